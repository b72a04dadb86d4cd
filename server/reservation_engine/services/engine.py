"""Reservation engine: the tenant-scoped operation surface over the services."""

import logging
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import ReservationError
from ..schemas.booking import (
    BookingListFilters,
    BookingOut,
    CancelBookingRequest,
    ConfirmBookingRequest,
    HoldBookingRequest,
)
from ..schemas.common import PaginatedResponse, ServiceResult
from ..schemas.departure import (
    CreateDepartureRequest,
    DepartureListFilters,
    DepartureOut,
    UpdateDepartureRequest,
)
from ..workers.expiry_scheduler import ExpiryScheduler
from .booking_service import BookingService
from .catalog import CatalogGateway
from .departure_service import DepartureService

logger = logging.getLogger(__name__)


class ReservationEngine:
    """
    Departure capacity operations for one tenant.

    Every operation returns a ``ServiceResult``. Domain errors become failed
    results carrying an HTTP-equivalent status and problem details; storage
    and other unexpected errors propagate to the caller.
    """

    def __init__(
        self,
        db: AsyncSession,
        tenant_id: str,
        catalog: CatalogGateway,
        scheduler: Optional[ExpiryScheduler] = None,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.tenant_id = tenant_id
        config = config or default_settings
        self.departure_service = DepartureService(db, tenant_id, catalog, config)
        self.booking_service = BookingService(db, tenant_id, catalog, scheduler, config)

    async def _run(
        self,
        operation: str,
        call: Callable[[], Awaitable[Any]],
        to_data: Callable[[Any], Any] = lambda value: value,
        http_status: int = 200,
    ) -> ServiceResult:
        try:
            value = await call()
        except ReservationError as e:
            logger.info(
                "Reservation operation refused",
                extra={
                    "tenant_id": self.tenant_id,
                    "operation": operation,
                    "status_code": e.status_code,
                    "detail": e.detail,
                }
            )
            return ServiceResult.fail(e.detail or e.title, e.status_code, e.problem_details)
        return ServiceResult.ok(to_data(value), http_status)

    # Departure directory

    async def create_departure(self, request: CreateDepartureRequest) -> ServiceResult[DepartureOut]:
        return await self._run(
            "create_departure",
            lambda: self.departure_service.create_departure(request),
            DepartureOut.model_validate,
            http_status=201,
        )

    async def get_departure(self, departure_id: str) -> ServiceResult[DepartureOut]:
        return await self._run(
            "get_departure",
            lambda: self.departure_service.get_departure(departure_id),
            DepartureOut.model_validate,
        )

    async def list_departures(
        self, filters: Optional[DepartureListFilters] = None
    ) -> ServiceResult[PaginatedResponse[DepartureOut]]:
        return await self._run(
            "list_departures",
            lambda: self.departure_service.list_departures(filters or DepartureListFilters()),
        )

    async def update_departure(
        self, departure_id: str, request: UpdateDepartureRequest
    ) -> ServiceResult[DepartureOut]:
        return await self._run(
            "update_departure",
            lambda: self.departure_service.update_departure(departure_id, request),
            DepartureOut.model_validate,
        )

    async def delete_departure(self, departure_id: str) -> ServiceResult[None]:
        return await self._run(
            "delete_departure",
            lambda: self.departure_service.delete_departure(departure_id),
        )

    # Booking lifecycle

    async def hold_booking(self, request: HoldBookingRequest) -> ServiceResult[BookingOut]:
        return await self._run(
            "hold_booking",
            lambda: self.booking_service.hold_booking(request),
            BookingOut.model_validate,
            http_status=201,
        )

    async def confirm_booking(
        self, booking_id: str, request: Optional[ConfirmBookingRequest] = None
    ) -> ServiceResult[BookingOut]:
        return await self._run(
            "confirm_booking",
            lambda: self.booking_service.confirm_booking(booking_id, request),
            BookingOut.model_validate,
        )

    async def cancel_booking(
        self, booking_id: str, request: CancelBookingRequest
    ) -> ServiceResult[BookingOut]:
        return await self._run(
            "cancel_booking",
            lambda: self.booking_service.cancel_booking(booking_id, request),
            BookingOut.model_validate,
        )

    async def expire_booking(self, booking_id: str) -> ServiceResult[Optional[BookingOut]]:
        """Expire a held booking; a booking that is no longer held yields success with no data."""
        return await self._run(
            "expire_booking",
            lambda: self.booking_service.expire_booking(booking_id),
            lambda booking: BookingOut.model_validate(booking) if booking is not None else None,
        )

    async def get_booking(self, booking_id: str) -> ServiceResult[BookingOut]:
        return await self._run(
            "get_booking",
            lambda: self.booking_service.get_booking(booking_id),
            BookingOut.model_validate,
        )

    async def list_bookings(
        self, filters: Optional[BookingListFilters] = None
    ) -> ServiceResult[PaginatedResponse[BookingOut]]:
        return await self._run(
            "list_bookings",
            lambda: self.booking_service.list_bookings(filters or BookingListFilters()),
        )
