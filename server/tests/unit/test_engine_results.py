"""Tests for the engine result surface and the runtime wiring."""

import asyncio
from datetime import timedelta

import pytest

from reservation_engine.core.config import Settings
from reservation_engine.models import BookingStatus, DepartureStatus
from reservation_engine.runtime import EngineRuntime, lifespan
from reservation_engine.schemas.booking import (
    BookingListFilters,
    CancelBookingRequest,
    ConfirmBookingRequest,
    HoldBookingRequest,
)
from reservation_engine.schemas.departure import DepartureListFilters, UpdateDepartureRequest
from reservation_engine.services.departure_service import DepartureService
from reservation_engine.services.engine import ReservationEngine
from reservation_engine.workers.expiry_scheduler import AsyncioExpiryScheduler

from conftest import TENANT_ID, build_departure_request


async def open_departure(engine: ReservationEngine, **overrides):
    created = await engine.create_departure(build_departure_request(**overrides))
    assert created.success and created.http_status == 201
    opened = await engine.update_departure(
        created.data.departure_id, UpdateDepartureRequest(status=DepartureStatus.ACTIVE)
    )
    assert opened.success and opened.http_status == 200
    return opened.data


def hold_request(departure, quantity: int = 1, **kwargs) -> HoldBookingRequest:
    return HoldBookingRequest(
        departure_id=departure.departure_id,
        resource_id=departure.resources[0].resource_id,
        customer_id="cust-1",
        quantity=quantity,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_booking_round_trip_statuses(test_session, catalog, scheduler):
    """Test that successful operations carry data and HTTP-equivalent statuses."""
    engine = ReservationEngine(test_session, TENANT_ID, catalog, scheduler)
    departure = await open_departure(engine)

    held = await engine.hold_booking(hold_request(departure, quantity=2))
    assert held.success and held.http_status == 201
    assert held.data.status == BookingStatus.HELD
    assert held.data.total_price == 160000
    assert held.error is None and held.problem is None

    confirmed = await engine.confirm_booking(held.data.booking_id, ConfirmBookingRequest(order_id="ord-9"))
    assert confirmed.http_status == 200
    assert confirmed.data.status == BookingStatus.CONFIRMED
    assert confirmed.data.order_id == "ord-9"

    cancelled = await engine.cancel_booking(
        held.data.booking_id, CancelBookingRequest(cancelled_by="agent-7", reason="changed plans")
    )
    assert cancelled.success
    assert cancelled.data.status == BookingStatus.CANCELLED
    assert cancelled.data.cancellation_reason == "changed plans"

    fetched = await engine.get_departure(departure.departure_id)
    resource = fetched.data.resources[0]
    assert (resource.available, resource.held, resource.booked) == (5, 0, 0)


@pytest.mark.asyncio
async def test_conflict_result_carries_problem(test_session, catalog, scheduler):
    engine = ReservationEngine(test_session, TENANT_ID, catalog, scheduler)
    departure = await open_departure(engine)

    result = await engine.hold_booking(hold_request(departure, quantity=6))

    assert not result.success
    assert result.http_status == 409
    assert result.data is None
    assert result.problem.status == 409
    assert result.problem.code == "NO_CAPACITY"
    assert result.problem.retryable is True
    assert "No capacity available" in result.error


@pytest.mark.asyncio
async def test_not_found_and_invalid_state_results(test_session, catalog, scheduler):
    engine = ReservationEngine(test_session, TENANT_ID, catalog, scheduler)

    missing = await engine.get_booking("nope")
    assert missing.http_status == 404
    assert missing.error == "Booking not found"
    assert missing.problem.title == "Resource Not Found"

    missing_departure = await engine.get_departure("nope")
    assert missing_departure.http_status == 404
    assert missing_departure.error == "Departure not found"

    draft = await engine.create_departure(build_departure_request())
    refused = await engine.hold_booking(hold_request(draft.data))
    assert refused.http_status == 400
    assert refused.error == "Departure is not open for booking"
    assert refused.problem.model_dump()["current_state"] == "draft"


@pytest.mark.asyncio
async def test_double_confirm_is_refused(test_session, catalog, scheduler):
    engine = ReservationEngine(test_session, TENANT_ID, catalog, scheduler)
    departure = await open_departure(engine)
    held = await engine.hold_booking(hold_request(departure))

    await engine.confirm_booking(held.data.booking_id)
    again = await engine.confirm_booking(held.data.booking_id)

    assert not again.success
    assert again.http_status == 400
    assert again.error == "Cannot confirm booking with status 'confirmed'"


@pytest.mark.asyncio
async def test_expire_result_is_empty_when_nothing_changed(test_session, catalog, scheduler):
    engine = ReservationEngine(test_session, TENANT_ID, catalog, scheduler)
    departure = await open_departure(engine)
    held = await engine.hold_booking(hold_request(departure))

    expired = await engine.expire_booking(held.data.booking_id)
    assert expired.success
    assert expired.data.status == BookingStatus.EXPIRED

    again = await engine.expire_booking(held.data.booking_id)
    assert again.success
    assert again.http_status == 200
    assert again.data is None


@pytest.mark.asyncio
async def test_list_operations_default_filters(test_session, catalog, scheduler):
    engine = ReservationEngine(test_session, TENANT_ID, catalog, scheduler)
    departure = await open_departure(engine)
    await engine.create_departure(build_departure_request(label="Autumn cruise"))
    await engine.hold_booking(hold_request(departure))

    departures = await engine.list_departures()
    assert departures.data.total == 2
    assert departures.data.page == 1

    active = await engine.list_departures(DepartureListFilters(status=DepartureStatus.ACTIVE))
    assert [d.departure_id for d in active.data.items] == [departure.departure_id]

    bookings = await engine.list_bookings()
    assert bookings.data.total == 1
    held = await engine.list_bookings(BookingListFilters(status=BookingStatus.HELD))
    assert held.data.items[0].customer_id == "cust-1"


@pytest.mark.asyncio
async def test_delete_departure_result(test_session, catalog, scheduler):
    engine = ReservationEngine(test_session, TENANT_ID, catalog, scheduler)
    draft = await engine.create_departure(build_departure_request())
    active = await open_departure(engine)

    refused = await engine.delete_departure(active.departure_id)
    assert refused.http_status == 400

    deleted = await engine.delete_departure(draft.data.departure_id)
    assert deleted.success and deleted.data is None
    assert (await engine.get_departure(draft.data.departure_id)).http_status == 404


@pytest.mark.asyncio
async def test_update_with_end_before_stored_start_is_refused(test_session, catalog, scheduler):
    engine = ReservationEngine(test_session, TENANT_ID, catalog, scheduler)
    created = await engine.create_departure(build_departure_request())

    result = await engine.update_departure(
        created.data.departure_id,
        UpdateDepartureRequest(ends_at=created.data.starts_at - timedelta(days=5)),
    )

    assert not result.success
    assert result.http_status == 400
    assert result.error == "ends_at must be after starts_at"


@pytest.mark.asyncio
async def test_runtime_engine_expires_from_scheduler(session_factory, catalog, scheduler):
    """Test that the scheduler callback expires a hold in a fresh session."""
    runtime = EngineRuntime(catalog, session_factory=session_factory, scheduler=scheduler, run_sweep=False)

    async with runtime.open_engine(TENANT_ID) as engine:
        departure = await open_departure(engine)
        held = await engine.hold_booking(hold_request(departure, quantity=2))
    assert scheduler.scheduled[0][1:] == (held.data.booking_id, TENANT_ID)

    await runtime.expire_from_scheduler(held.data.booking_id, TENANT_ID)

    async with runtime.open_engine(TENANT_ID) as engine:
        booking = await engine.get_booking(held.data.booking_id)
        fetched = await engine.get_departure(departure.departure_id)
    assert booking.data.status == BookingStatus.EXPIRED
    assert fetched.data.resources[0].available == 5
    # Scheduler-triggered expiry does not cancel its own job
    assert scheduler.cancelled == []


@pytest.mark.asyncio
async def test_lifespan_runs_hold_expiry_end_to_end(test_engine, session_factory, catalog):
    """Test a real in-process expiry job releasing a one second hold."""
    async with lifespan(
        catalog,
        db_engine=test_engine,
        session_factory=session_factory,
        create_schema=True,
        observability=False,
    ) as runtime:
        assert isinstance(runtime.scheduler, AsyncioExpiryScheduler)
        assert runtime.worker_manager.get_worker_status() == {"hold_expiry": True}

        async with runtime.open_engine(TENANT_ID) as engine:
            departure = await open_departure(engine)
            held = await engine.hold_booking(hold_request(departure, hold_ttl_ms=1000))
        assert held.data.hold_job_id == AsyncioExpiryScheduler.job_id_for(held.data.booking_id, TENANT_ID)

        status = None
        for _ in range(60):
            await asyncio.sleep(0.1)
            async with runtime.open_engine(TENANT_ID) as engine:
                status = (await engine.get_booking(held.data.booking_id)).data.status
            if status == BookingStatus.EXPIRED:
                break

        assert status == BookingStatus.EXPIRED

    assert runtime.worker_manager.get_worker_status() == {"hold_expiry": False}
    assert runtime.scheduler.pending_jobs == []


@pytest.mark.asyncio
async def test_lifespan_binds_sessions_to_given_engine(test_engine, session_factory, catalog, scheduler):
    """Test that lifespan sessions use the supplied engine and settings."""
    config = Settings(expiry_sweep_batch_size=7, default_hold_ttl_ms=120000)

    async with lifespan(
        catalog,
        db_engine=test_engine,
        scheduler=scheduler,
        create_schema=True,
        observability=False,
        config=config,
    ) as runtime:
        assert runtime.config is config
        assert runtime.worker_manager.get_worker("hold_expiry").batch_size == 7

        async with runtime.open_engine(TENANT_ID) as engine:
            created = await engine.create_departure(build_departure_request(hold_ttl_ms=None))

        async with session_factory() as session:
            stored = await DepartureService(session, TENANT_ID, catalog).get_departure(
                created.data.departure_id
            )
        assert stored.hold_ttl_ms == 120000
