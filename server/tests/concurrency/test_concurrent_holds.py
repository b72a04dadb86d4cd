"""
Concurrency tests for the capacity ledger.

Each task works through its own session and connection, so competing
writers only meet inside the database.
"""

import asyncio

import pytest

from reservation_engine.core.exceptions import InsufficientCapacityError, InvalidStateError
from reservation_engine.models import BookingStatus
from reservation_engine.schemas.booking import CancelBookingRequest, HoldBookingRequest
from reservation_engine.services.booking_service import BookingService

from conftest import TENANT_ID


def hold_request(departure, quantity: int = 1, customer_id: str = "cust-1") -> HoldBookingRequest:
    return HoldBookingRequest(
        departure_id=departure.departure_id,
        resource_id=departure.resources[0].resource_id,
        customer_id=customer_id,
        quantity=quantity,
    )


async def attempt_hold(session_factory, catalog, scheduler, request):
    async with session_factory() as session:
        service = BookingService(session, TENANT_ID, catalog, scheduler)
        try:
            booking = await service.hold_booking(request)
        except InsufficientCapacityError:
            return None
        return booking.booking_id


async def place_hold(session_factory, catalog, scheduler, departure, quantity=1):
    booking_id = await attempt_hold(session_factory, catalog, scheduler, hold_request(departure, quantity))
    assert booking_id is not None
    return booking_id


@pytest.mark.asyncio
async def test_concurrent_holds_never_oversell(session_factory, catalog, scheduler, make_departure, ledger):
    """Test that 20 simultaneous holds of one unit on a pool of five yield exactly five holds."""
    departure = await make_departure()
    resource_id = departure.resources[0].resource_id

    results = await asyncio.gather(*(
        attempt_hold(session_factory, catalog, scheduler, hold_request(departure, customer_id=f"cust-{n}"))
        for n in range(20)
    ))

    winners = [booking_id for booking_id in results if booking_id is not None]
    assert len(winners) == 5
    assert len(set(winners)) == 5

    counters = (await ledger(departure.departure_id))[resource_id]
    assert (counters.available, counters.held, counters.booked) == (0, 5, 0)


@pytest.mark.asyncio
async def test_concurrent_multi_unit_holds(session_factory, catalog, scheduler, make_departure, ledger):
    departure = await make_departure()
    resource_id = departure.resources[0].resource_id

    results = await asyncio.gather(*(
        attempt_hold(session_factory, catalog, scheduler, hold_request(departure, quantity=2))
        for _ in range(10)
    ))

    assert sum(1 for booking_id in results if booking_id is not None) == 2
    counters = (await ledger(departure.departure_id))[resource_id]
    assert (counters.available, counters.held, counters.booked) == (1, 4, 0)


async def confirm(session_factory, catalog, booking_id):
    async with session_factory() as session:
        try:
            await BookingService(session, TENANT_ID, catalog).confirm_booking(booking_id)
        except InvalidStateError:
            return False
        return True


async def cancel(session_factory, catalog, booking_id):
    async with session_factory() as session:
        try:
            await BookingService(session, TENANT_ID, catalog).cancel_booking(
                booking_id, CancelBookingRequest(cancelled_by="cust-1")
            )
        except InvalidStateError:
            return False
        return True


async def expire(session_factory, booking_id):
    async with session_factory() as session:
        return await BookingService(session, TENANT_ID).expire_booking(booking_id) is not None


@pytest.mark.asyncio
async def test_confirm_racing_expiry_has_one_winner(session_factory, catalog, scheduler, make_departure, ledger):
    """Test that a confirm and an expiry of the same hold never both apply."""
    departure = await make_departure()
    resource_id = departure.resources[0].resource_id
    booking_ids = [
        await place_hold(session_factory, catalog, scheduler, departure) for _ in range(5)
    ]

    outcomes = []
    for booking_id in booking_ids:
        confirmed, expired = await asyncio.gather(
            confirm(session_factory, catalog, booking_id),
            expire(session_factory, booking_id),
        )
        assert confirmed != expired
        outcomes.append(confirmed)

    async with session_factory() as session:
        service = BookingService(session, TENANT_ID)
        for booking_id, confirmed in zip(booking_ids, outcomes):
            booking = await service.get_booking(booking_id)
            expected = BookingStatus.CONFIRMED if confirmed else BookingStatus.EXPIRED
            assert booking.status == expected
        counters = (await ledger(departure.departure_id, session))[resource_id]

    booked = sum(outcomes)
    assert (counters.available, counters.held, counters.booked) == (5 - booked, 0, booked)


@pytest.mark.asyncio
async def test_cancel_racing_expiry_restores_capacity_once(
    session_factory, catalog, scheduler, make_departure, ledger
):
    departure = await make_departure()
    resource_id = departure.resources[0].resource_id
    booking_ids = [
        await place_hold(session_factory, catalog, scheduler, departure, quantity=2) for _ in range(2)
    ]

    for booking_id in booking_ids:
        cancelled, expired = await asyncio.gather(
            cancel(session_factory, catalog, booking_id),
            expire(session_factory, booking_id),
        )
        assert cancelled != expired

    async with session_factory() as session:
        counters = (await ledger(departure.departure_id, session))[resource_id]
    assert (counters.available, counters.held, counters.booked) == (5, 0, 0)


@pytest.mark.asyncio
async def test_racing_confirms_apply_once(session_factory, catalog, scheduler, make_departure, ledger):
    departure = await make_departure()
    resource_id = departure.resources[0].resource_id
    booking_id = await place_hold(session_factory, catalog, scheduler, departure, quantity=3)

    results = await asyncio.gather(*(confirm(session_factory, catalog, booking_id) for _ in range(4)))

    assert sum(results) == 1
    async with session_factory() as session:
        counters = (await ledger(departure.departure_id, session))[resource_id]
    assert (counters.available, counters.held, counters.booked) == (2, 0, 3)


@pytest.mark.asyncio
async def test_refused_hold_releases_write_lock(session_factory, catalog, scheduler, make_departure, ledger):
    """Test that a session kept open after a refused hold does not block other writers."""
    departure = await make_departure()

    async with session_factory() as refused_session:
        with pytest.raises(InsufficientCapacityError):
            await BookingService(refused_session, TENANT_ID, catalog, scheduler).hold_booking(
                hold_request(departure, quantity=6)
            )
        assert not refused_session.in_transaction()

        async with session_factory() as other_session:
            booking = await BookingService(other_session, TENANT_ID, catalog, scheduler).hold_booking(
                HoldBookingRequest(
                    departure_id=departure.departure_id,
                    resource_id=departure.resources[1].resource_id,
                    customer_id="cust-2",
                    quantity=1,
                )
            )
        assert booking.status == BookingStatus.HELD

    async with session_factory() as session:
        counters = (await ledger(departure.departure_id, session))[departure.resources[1].resource_id]
    assert (counters.available, counters.held) == (1, 1)
