"""Departure directory: define, read, list, update and delete departures."""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.clock import as_utc
from ..core.config import Settings, settings as default_settings
from ..core.exceptions import InvalidStateError, NotFoundError
from ..core.ids import generate_id
from ..models.booking import Booking
from ..models.departure import Departure, DepartureResource, DepartureStatus
from ..schemas.common import PaginatedResponse
from ..schemas.departure import (
    CreateDepartureRequest,
    DepartureListFilters,
    DepartureOut,
    UpdateDepartureRequest,
)
from .catalog import CatalogGateway

logger = logging.getLogger(__name__)

DEPARTURE_ID_LENGTH = 12
RESOURCE_ID_LENGTH = 8

# Fields an update may touch; capacity counters are deliberately absent.
UPDATABLE_FIELDS = ("label", "starts_at", "ends_at", "booking_cutoff_at", "hold_ttl_ms", "status")


def resolve_page(page: int, limit: int | None, config: Settings) -> tuple[int, int]:
    """Clamp requested paging to the configured bounds."""
    limit = limit or config.default_page_size
    return max(page, 1), min(limit, config.max_page_size)


class DepartureService:
    """Service for departure-related operations within one tenant."""

    def __init__(
        self,
        db: AsyncSession,
        tenant_id: str,
        catalog: CatalogGateway,
        config: Settings | None = None,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.catalog = catalog
        self.config = config or default_settings

    async def create_departure(self, request: CreateDepartureRequest) -> Departure:
        """
        Create a departure in draft status with fully available resources.

        Args:
            request: Departure creation request

        Returns:
            Created departure entity with its resources

        Raises:
            NotFoundError: If the product or a resource's child product is unknown
            InvalidStateError: If the product is not bookable
        """
        product = await self.catalog.lookup(request.product_entity_code)
        if not product.found:
            raise NotFoundError(
                "product", request.product_entity_code, detail="Parent product not found"
            )
        if not product.bookable:
            raise InvalidStateError(
                "Product is not marked as bookable. Set product_kind to 'bookable' first.",
                current_state="not_bookable",
            )

        for resource in request.resources:
            child = await self.catalog.lookup(resource.child_entity_code)
            if not child.found:
                raise NotFoundError(
                    "product",
                    resource.child_entity_code,
                    detail=f"Child product not found: {resource.child_entity_code}",
                )

        departure = Departure(
            departure_id=generate_id(DEPARTURE_ID_LENGTH),
            tenant_id=self.tenant_id,
            product_entity_code=request.product_entity_code,
            label=request.label,
            status=DepartureStatus.DRAFT,
            starts_at=request.starts_at,
            ends_at=request.ends_at,
            booking_cutoff_at=request.booking_cutoff_at,
            hold_ttl_ms=request.hold_ttl_ms or self.config.default_hold_ttl_ms,
            resources=[
                DepartureResource(
                    resource_id=generate_id(RESOURCE_ID_LENGTH),
                    position=position,
                    resource_type=resource.resource_type.value,
                    child_entity_code=resource.child_entity_code,
                    price_override=resource.price_override,
                    currency=resource.currency,
                    total_capacity=resource.total_capacity,
                    available=resource.total_capacity,
                    held=0,
                    booked=0,
                )
                for position, resource in enumerate(request.resources)
            ],
        )

        self.db.add(departure)
        await self.db.commit()

        logger.info(
            "Departure created successfully",
            extra={
                "tenant_id": self.tenant_id,
                "departure_id": departure.departure_id,
                "product_entity_code": departure.product_entity_code,
                "starts_at": request.starts_at.isoformat(),
                "resource_count": len(request.resources),
            }
        )

        return await self.get_departure(departure.departure_id)

    async def find_departure(self, departure_id: str) -> Departure | None:
        """Load a departure with its resources, refreshing any stale copy in the session."""
        stmt = (
            select(Departure)
            .options(selectinload(Departure.resources))
            .where(
                Departure.departure_id == departure_id,
                Departure.tenant_id == self.tenant_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_departure(self, departure_id: str) -> Departure:
        """
        Get departure by ID or raise NotFoundError.

        Raises:
            NotFoundError: If departure not found
        """
        departure = await self.find_departure(departure_id)
        if not departure:
            raise NotFoundError("departure", departure_id, detail="Departure not found")
        return departure

    async def list_departures(self, filters: DepartureListFilters) -> PaginatedResponse[DepartureOut]:
        """
        List departures newest start first.

        Args:
            filters: Product, status and starts_at range filters plus paging

        Returns:
            One page of departures with totals
        """
        page, limit = resolve_page(filters.page, filters.limit, self.config)

        conditions = [Departure.tenant_id == self.tenant_id]
        if filters.product_entity_code:
            conditions.append(Departure.product_entity_code == filters.product_entity_code)
        if filters.status:
            conditions.append(Departure.status == filters.status)
        if filters.date_from:
            conditions.append(Departure.starts_at >= filters.date_from)
        if filters.date_to:
            conditions.append(Departure.starts_at <= filters.date_to)

        total = await self.db.scalar(select(func.count()).select_from(Departure).where(*conditions))

        stmt = (
            select(Departure)
            .options(selectinload(Departure.resources))
            .where(*conditions)
            .order_by(Departure.starts_at.desc(), Departure.departure_id)
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        departures = list(result.scalars())

        logger.debug(
            "Departure listing completed",
            extra={
                "tenant_id": self.tenant_id,
                "returned": len(departures),
                "total": total,
                "page": page,
            }
        )

        return PaginatedResponse[DepartureOut].build(
            items=[DepartureOut.model_validate(d) for d in departures],
            total=total or 0,
            page=page,
            limit=limit,
        )

    async def update_departure(self, departure_id: str, request: UpdateDepartureRequest) -> Departure:
        """
        Apply a partial update; fields left unset are untouched.

        Raises:
            NotFoundError: If departure not found
            InvalidStateError: If the resulting end is not after the start
        """
        departure = await self.get_departure(departure_id)

        changes = request.model_dump(exclude_unset=True)
        starts_at = as_utc(changes.get("starts_at", departure.starts_at))
        ends_at = as_utc(changes.get("ends_at", departure.ends_at))
        if ends_at is not None and ends_at <= starts_at:
            raise InvalidStateError("ends_at must be after starts_at")

        for field in UPDATABLE_FIELDS:
            if field in changes:
                setattr(departure, field, changes[field])

        await self.db.commit()

        logger.info(
            "Departure updated",
            extra={
                "tenant_id": self.tenant_id,
                "departure_id": departure_id,
                "fields": sorted(changes),
            }
        )

        return await self.get_departure(departure_id)

    async def delete_departure(self, departure_id: str) -> None:
        """
        Delete a draft departure that no booking references.

        Raises:
            NotFoundError: If departure not found
            InvalidStateError: If the departure is not draft or has bookings
        """
        departure = await self.get_departure(departure_id)

        if departure.status != DepartureStatus.DRAFT:
            raise InvalidStateError(
                "Only draft departures can be deleted", current_state=departure.status
            )

        booking_count = await self.db.scalar(
            select(func.count()).select_from(Booking).where(
                Booking.departure_id == departure_id,
                Booking.tenant_id == self.tenant_id,
            )
        )
        if booking_count:
            raise InvalidStateError(
                "Cannot delete departure with existing bookings", current_state=departure.status
            )

        await self.db.delete(departure)
        await self.db.commit()

        logger.info(
            "Departure deleted",
            extra={"tenant_id": self.tenant_id, "departure_id": departure_id}
        )
