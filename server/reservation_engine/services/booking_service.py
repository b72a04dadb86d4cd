"""Booking lifecycle: hold, confirm, cancel and expire departure capacity."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import as_utc, utcnow
from ..core.config import Settings, settings as default_settings
from ..core.exceptions import (
    InsufficientCapacityError,
    InternalError,
    InvalidStateError,
    NotFoundError,
)
from ..core.ids import generate_id
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.departure import DepartureResource, DepartureStatus
from ..schemas.booking import (
    BookingListFilters,
    BookingOut,
    CancelBookingRequest,
    ConfirmBookingRequest,
    HoldBookingRequest,
)
from ..schemas.common import PaginatedResponse
from ..workers.expiry_scheduler import ExpiryScheduler
from .capacity_ledger import CapacityLedger
from .catalog import CatalogGateway
from .departure_service import DepartureService, resolve_page

logger = logging.getLogger(__name__)

BOOKING_ID_LENGTH = 12


class BookingService:
    """Service for booking-related operations within one tenant."""

    def __init__(
        self,
        db: AsyncSession,
        tenant_id: str,
        catalog: Optional[CatalogGateway] = None,
        scheduler: Optional[ExpiryScheduler] = None,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.catalog = catalog
        self.scheduler = scheduler
        self.config = config or default_settings
        self.ledger = CapacityLedger(db, tenant_id)
        self.departures = DepartureService(db, tenant_id, catalog, self.config)

    async def hold_booking(self, request: HoldBookingRequest) -> Booking:
        """
        Reserve capacity on a departure resource and create a held booking.

        The capacity move and the booking insert are committed together.
        Scheduling the expiry job happens afterwards and never fails the hold.

        Args:
            request: Hold request

        Returns:
            The held booking

        Raises:
            NotFoundError: If the departure or resource does not exist
            InvalidStateError: If the departure is not active or its cutoff has passed
            InsufficientCapacityError: If the resource cannot cover the quantity
        """
        departure = await self.departures.get_departure(request.departure_id)

        if departure.status != DepartureStatus.ACTIVE:
            raise InvalidStateError(
                "Departure is not open for booking", current_state=departure.status
            )

        now = utcnow()
        cutoff = as_utc(departure.booking_cutoff_at)
        if cutoff is not None and now > cutoff:
            raise InvalidStateError("Booking cutoff has passed", current_state=departure.status)

        resource = departure.find_resource(request.resource_id)
        if resource is None:
            raise NotFoundError(
                "resource", request.resource_id, detail="Resource not found in departure"
            )

        unit_price, currency = await self._resolve_price(resource)

        reserved = await self.ledger.reserve(
            request.departure_id, request.resource_id, request.quantity
        )
        if not reserved:
            metrics_collector.record_hold_conflict(self.tenant_id)
            logger.warning(
                "Hold creation failed - insufficient capacity",
                extra={
                    "tenant_id": self.tenant_id,
                    "departure_id": request.departure_id,
                    "resource_id": request.resource_id,
                    "requested_quantity": request.quantity,
                    "available_capacity": resource.available,
                }
            )
            await self.db.rollback()
            raise InsufficientCapacityError(
                departure_id=request.departure_id,
                resource_id=request.resource_id,
                requested_quantity=request.quantity,
            )

        hold_ttl_ms = request.hold_ttl_ms or departure.hold_ttl_ms or self.config.default_hold_ttl_ms
        hold_expires_at = now + timedelta(milliseconds=hold_ttl_ms)

        booking = Booking(
            booking_id=generate_id(BOOKING_ID_LENGTH),
            tenant_id=self.tenant_id,
            departure_id=departure.departure_id,
            resource_id=resource.resource_id,
            child_entity_code=resource.child_entity_code,
            departure_label=departure.label,
            starts_at=departure.starts_at,
            customer_id=request.customer_id,
            order_id=request.order_id,
            quantity=request.quantity,
            unit_price=unit_price,
            currency=currency,
            total_price=unit_price * request.quantity,
            status=BookingStatus.HELD,
            hold_expires_at=hold_expires_at,
            notes=request.notes,
        )
        self.db.add(booking)
        await self.db.commit()

        metrics_collector.record_hold_created(self.tenant_id)
        logger.info(
            "Hold created successfully",
            extra={
                "tenant_id": self.tenant_id,
                "booking_id": booking.booking_id,
                "departure_id": request.departure_id,
                "resource_id": request.resource_id,
                "quantity": request.quantity,
                "customer_id": request.customer_id,
                "hold_expires_at": hold_expires_at.isoformat(),
            }
        )

        await self._schedule_expiry(booking.booking_id, hold_ttl_ms)

        return await self.get_booking(booking.booking_id)

    async def confirm_booking(
        self, booking_id: str, request: Optional[ConfirmBookingRequest] = None
    ) -> Booking:
        """
        Turn a held booking into a confirmed one.

        Args:
            booking_id: Booking to confirm
            request: Optional order reference to attach

        Returns:
            The confirmed booking

        Raises:
            NotFoundError: If the booking does not exist
            InvalidStateError: If the booking is not held
            InternalError: If the held counter cannot cover the booking
        """
        booking = await self.get_booking(booking_id)
        self._require_status(booking, "confirm", BookingStatus.HELD)
        hold_job_id = booking.hold_job_id

        values = {
            "status": BookingStatus.CONFIRMED,
            "confirmed_at": utcnow(),
            "hold_expires_at": None,
            "hold_job_id": None,
        }
        if request is not None and request.order_id:
            values["order_id"] = request.order_id

        await self._claim(booking, BookingStatus.HELD, values, "confirm")

        committed = await self.ledger.commit_hold(
            booking.departure_id, booking.resource_id, booking.quantity
        )
        if not committed:
            await self._ledger_failure(booking, "confirm")

        await self.db.commit()

        metrics_collector.record_booking_confirmed(self.tenant_id)
        logger.info(
            "Booking confirmed successfully",
            extra={
                "tenant_id": self.tenant_id,
                "booking_id": booking_id,
                "departure_id": booking.departure_id,
                "resource_id": booking.resource_id,
                "quantity": booking.quantity,
                "order_id": values.get("order_id", booking.order_id),
            }
        )

        await self._cancel_expiry_job(hold_job_id, booking_id)

        return await self.get_booking(booking_id)

    async def cancel_booking(self, booking_id: str, request: CancelBookingRequest) -> Booking:
        """
        Cancel a held or confirmed booking and return its capacity.

        Raises:
            NotFoundError: If the booking does not exist
            InvalidStateError: If the booking is already cancelled or expired
            InternalError: If the source counter cannot cover the booking
        """
        booking = await self.get_booking(booking_id)
        previous_status = self._require_status(
            booking, "cancel", BookingStatus.HELD, BookingStatus.CONFIRMED
        )
        hold_job_id = booking.hold_job_id

        await self._claim(
            booking,
            previous_status,
            {
                "status": BookingStatus.CANCELLED,
                "cancelled_at": utcnow(),
                "cancelled_by": request.cancelled_by,
                "cancellation_reason": request.reason,
                "hold_expires_at": None,
                "hold_job_id": None,
            },
            "cancel",
        )

        if previous_status == BookingStatus.HELD:
            released = await self.ledger.release_hold(
                booking.departure_id, booking.resource_id, booking.quantity
            )
        else:
            released = await self.ledger.release_booking(
                booking.departure_id, booking.resource_id, booking.quantity
            )
        if not released:
            await self._ledger_failure(booking, "cancel")

        await self.db.commit()

        metrics_collector.record_booking_cancelled(previous_status.value)
        logger.info(
            "Booking cancelled successfully",
            extra={
                "tenant_id": self.tenant_id,
                "booking_id": booking_id,
                "previous_status": previous_status.value,
                "cancelled_by": request.cancelled_by,
                "quantity_released": booking.quantity,
            }
        )

        if previous_status == BookingStatus.HELD:
            await self._cancel_expiry_job(hold_job_id, booking_id)

        return await self.get_booking(booking_id)

    async def expire_booking(self, booking_id: str, trigger: str = "scheduler") -> Optional[Booking]:
        """
        Expire a booking if it is still held and return its capacity.

        A booking that is missing or no longer held is left alone; that is
        the normal outcome when a confirm or cancel won the race.

        Args:
            booking_id: Booking to expire
            trigger: ``scheduler`` or ``sweep``, for metrics and logs

        Returns:
            The expired booking, or None when nothing changed
        """
        booking = await self.find_booking(booking_id)
        if booking is None or not booking.is_held:
            logger.debug(
                "Expiry skipped - booking no longer held",
                extra={"tenant_id": self.tenant_id, "booking_id": booking_id, "trigger": trigger}
            )
            return None

        hold_job_id = booking.hold_job_id
        result = await self.db.execute(
            update(Booking)
            .where(
                Booking.booking_id == booking_id,
                Booking.tenant_id == self.tenant_id,
                Booking.status == BookingStatus.HELD,
            )
            .values(
                status=BookingStatus.EXPIRED,
                expired_at=utcnow(),
                hold_expires_at=None,
                hold_job_id=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            return None

        released = await self.ledger.release_hold(
            booking.departure_id, booking.resource_id, booking.quantity
        )
        if not released:
            await self._ledger_failure(booking, "expire")

        await self.db.commit()

        metrics_collector.record_hold_expired(trigger)
        logger.info(
            "Hold expired and capacity restored",
            extra={
                "tenant_id": self.tenant_id,
                "booking_id": booking_id,
                "departure_id": booking.departure_id,
                "resource_id": booking.resource_id,
                "quantity_restored": booking.quantity,
                "trigger": trigger,
            }
        )

        if trigger != "scheduler":
            await self._cancel_expiry_job(hold_job_id, booking_id)

        return await self.get_booking(booking_id)

    async def find_booking(self, booking_id: str) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.booking_id == booking_id, Booking.tenant_id == self.tenant_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking(self, booking_id: str) -> Booking:
        """
        Get booking by ID or raise NotFoundError.

        Raises:
            NotFoundError: If booking not found
        """
        booking = await self.find_booking(booking_id)
        if not booking:
            raise NotFoundError("booking", booking_id, detail="Booking not found")
        return booking

    async def list_bookings(self, filters: BookingListFilters) -> PaginatedResponse[BookingOut]:
        """
        List bookings newest first.

        The date range applies to the departure start stored on each booking.
        """
        page, limit = resolve_page(filters.page, filters.limit, self.config)

        conditions = [Booking.tenant_id == self.tenant_id]
        if filters.departure_id:
            conditions.append(Booking.departure_id == filters.departure_id)
        if filters.customer_id:
            conditions.append(Booking.customer_id == filters.customer_id)
        if filters.status:
            conditions.append(Booking.status == filters.status)
        if filters.date_from:
            conditions.append(Booking.starts_at >= filters.date_from)
        if filters.date_to:
            conditions.append(Booking.starts_at <= filters.date_to)

        total = await self.db.scalar(select(func.count()).select_from(Booking).where(*conditions))

        stmt = (
            select(Booking)
            .where(*conditions)
            .order_by(Booking.created_at.desc(), Booking.booking_id)
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        bookings = list(result.scalars())

        return PaginatedResponse[BookingOut].build(
            items=[BookingOut.model_validate(b) for b in bookings],
            total=total or 0,
            page=page,
            limit=limit,
        )

    async def _resolve_price(self, resource: DepartureResource) -> tuple[int, str]:
        """Unit price in minor units and its currency for one unit of ``resource``."""
        currency = resource.currency or self.config.default_currency
        if resource.price_override is not None:
            return resource.price_override, currency

        if self.catalog is None:
            return 0, currency

        item = await self.catalog.lookup(resource.child_entity_code)
        if not item.found:
            return 0, currency
        return item.list_price or 0, item.currency or currency

    def _require_status(self, booking: Booking, action: str, *allowed: BookingStatus) -> BookingStatus:
        status = BookingStatus(booking.status)
        if status not in allowed:
            raise InvalidStateError(
                f"Cannot {action} booking with status '{status.value}'",
                current_state=status.value,
            )
        return status

    async def _claim(self, booking: Booking, expected: BookingStatus, values: dict, action: str) -> None:
        """Compare-and-swap the booking row away from ``expected``."""
        result = await self.db.execute(
            update(Booking)
            .where(
                Booking.booking_id == booking.booking_id,
                Booking.tenant_id == self.tenant_id,
                Booking.status == expected,
            )
            .values(values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            booking_id = booking.booking_id
            await self.db.rollback()
            logger.warning(
                "Booking changed status concurrently",
                extra={
                    "tenant_id": self.tenant_id,
                    "booking_id": booking_id,
                    "expected_status": expected.value,
                    "action": action,
                }
            )
            raise InvalidStateError(
                f"Cannot {action} booking: status is no longer '{expected.value}'",
                current_state=expected.value,
            )

    async def _ledger_failure(self, booking: Booking, action: str) -> None:
        """Roll back a half-done transition and raise; the counters disagree with the booking."""
        error = InternalError("Failed to update departure capacity")
        context = {
            "tenant_id": self.tenant_id,
            "booking_id": booking.booking_id,
            "departure_id": booking.departure_id,
            "resource_id": booking.resource_id,
            "quantity": booking.quantity,
            "action": action,
            "error_id": error.error_id,
        }
        await self.db.rollback()
        logger.error("Capacity ledger rejected a booking transition", extra=context)
        raise error

    async def _schedule_expiry(self, booking_id: str, hold_ttl_ms: int) -> None:
        if self.scheduler is None:
            metrics_collector.record_scheduler_failure("schedule")
            logger.warning(
                "No expiry scheduler configured - hold relies on the reconciliation sweep",
                extra={"tenant_id": self.tenant_id, "booking_id": booking_id}
            )
            return

        try:
            job_id = await self.scheduler.schedule(
                timedelta(milliseconds=hold_ttl_ms), booking_id, self.tenant_id
            )
        except Exception:
            metrics_collector.record_scheduler_failure("schedule")
            logger.warning(
                "Could not schedule hold expiry - hold relies on the reconciliation sweep",
                exc_info=True,
                extra={"tenant_id": self.tenant_id, "booking_id": booking_id}
            )
            return

        await self.db.execute(
            update(Booking)
            .where(
                Booking.booking_id == booking_id,
                Booking.tenant_id == self.tenant_id,
                Booking.status == BookingStatus.HELD,
            )
            .values(hold_job_id=job_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def _cancel_expiry_job(self, job_id: Optional[str], booking_id: str) -> None:
        if not job_id or self.scheduler is None:
            return
        try:
            await self.scheduler.cancel(job_id)
        except Exception:
            metrics_collector.record_scheduler_failure("cancel")
            logger.warning(
                "Could not cancel hold expiry job",
                exc_info=True,
                extra={"tenant_id": self.tenant_id, "booking_id": booking_id, "job_id": job_id}
            )


async def expire_overdue_holds(
    db: AsyncSession,
    now: Optional[datetime] = None,
    batch_size: int = 100,
    scheduler: Optional[ExpiryScheduler] = None,
) -> int:
    """
    Expire held bookings whose hold has run out, across all tenants.

    Picks up holds whose expiry job was lost or never scheduled. Each
    booking is expired under its own tenant, oldest expiry first.

    Args:
        db: Database session
        now: Reference time, defaults to the current time
        batch_size: Maximum number of bookings to process

    Returns:
        Number of bookings expired
    """
    now = as_utc(now) or utcnow()

    stmt = (
        select(Booking.booking_id, Booking.tenant_id)
        .where(
            Booking.status == BookingStatus.HELD,
            Booking.hold_expires_at <= now,
        )
        .order_by(Booking.hold_expires_at, Booking.booking_id)
        .limit(batch_size)
    )
    result = await db.execute(stmt)
    overdue = list(result.all())

    expired_count = 0
    for booking_id, tenant_id in overdue:
        service = BookingService(db, tenant_id, scheduler=scheduler)
        try:
            if await service.expire_booking(booking_id, trigger="sweep") is not None:
                expired_count += 1
        except Exception:
            logger.exception(
                "Failed to expire overdue hold",
                extra={"tenant_id": tenant_id, "booking_id": booking_id}
            )
            await db.rollback()
            continue

    if overdue:
        logger.info(
            "Overdue hold sweep completed",
            extra={"found": len(overdue), "expired": expired_count, "now": now.isoformat()}
        )

    return expired_count
