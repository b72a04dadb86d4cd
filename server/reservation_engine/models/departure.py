"""Departure and departure resource model definitions."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base


class DepartureStatus(str, Enum):
    """Departure status enumeration."""
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


class ResourceType(str, Enum):
    """Kinds of capacity pool a departure can offer."""
    CABIN = "cabin"
    SEAT = "seat"
    SLOT = "slot"
    ROOM = "room"
    VEHICLE = "vehicle"
    OTHER = "other"


DEPARTURE_STATUS_LABELS = {
    DepartureStatus.DRAFT: "Draft",
    DepartureStatus.ACTIVE: "Open for booking",
    DepartureStatus.CLOSED: "Closed",
}

RESOURCE_TYPE_LABELS = {
    ResourceType.CABIN: "Cabin",
    ResourceType.SEAT: "Seat",
    ResourceType.SLOT: "Time slot",
    ResourceType.ROOM: "Room",
    ResourceType.VEHICLE: "Vehicle",
    ResourceType.OTHER: "Other",
}


class Departure(Base):
    """Departure entity: a scheduled, bookable instance of a catalog product."""

    __tablename__ = "departures"

    # Primary key
    departure_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Catalog reference (not owned)
    product_entity_code: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # Scheduling
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[DepartureStatus] = mapped_column(
        String(20),
        nullable=False,
        default=DepartureStatus.DRAFT,
        index=True
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    booking_cutoff_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    hold_ttl_ms: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("length(label) > 0", name="ck_departure_label_not_empty"),
        CheckConstraint("hold_ttl_ms > 0", name="ck_departure_hold_ttl_positive"),
        CheckConstraint(
            "status IN ('draft', 'active', 'closed')",
            name="ck_departure_status_valid"
        ),
    )

    # Resources live in an ordered array owned by the departure; bookings
    # point at them by (departure_id, resource_id) and are not mapped here.
    resources: Mapped[list["DepartureResource"]] = relationship(
        "DepartureResource",
        back_populates="departure",
        cascade="all, delete-orphan",
        order_by="DepartureResource.position",
    )

    def find_resource(self, resource_id: str) -> Optional["DepartureResource"]:
        """Return the resource with ``resource_id`` or None."""
        for resource in self.resources:
            if resource.resource_id == resource_id:
                return resource
        return None

    def __repr__(self) -> str:
        return (
            f"<Departure(departure_id={self.departure_id}, tenant_id={self.tenant_id}, "
            f"label='{self.label}', status={self.status}, starts_at={self.starts_at})>"
        )


class DepartureResource(Base):
    """One capacity pool within a departure, with its ledger counters."""

    __tablename__ = "departure_resources"

    departure_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("departures.departure_id", ondelete="CASCADE"),
        primary_key=True
    )
    resource_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    resource_type: Mapped[str] = mapped_column(String(32), nullable=False)
    child_entity_code: Mapped[str] = mapped_column(String(128), nullable=False)

    # Price information (stored as minor units, e.g., cents)
    price_override: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    # Capacity ledger
    total_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    available: Mapped[int] = mapped_column(Integer, nullable=False)
    held: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    booked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("total_capacity >= 0", name="ck_resource_total_capacity_non_negative"),
        CheckConstraint("available >= 0", name="ck_resource_available_non_negative"),
        CheckConstraint("held >= 0", name="ck_resource_held_non_negative"),
        CheckConstraint("booked >= 0", name="ck_resource_booked_non_negative"),
        CheckConstraint(
            "available + held + booked = total_capacity",
            name="ck_resource_ledger_balanced"
        ),
        CheckConstraint(
            "price_override IS NULL OR price_override >= 0",
            name="ck_resource_price_override_non_negative"
        ),
    )

    departure: Mapped["Departure"] = relationship("Departure", back_populates="resources")

    @property
    def is_balanced(self) -> bool:
        """True when the ledger counters add up to the total capacity."""
        return self.available + self.held + self.booked == self.total_capacity

    def __repr__(self) -> str:
        return (
            f"<DepartureResource(departure_id={self.departure_id}, resource_id={self.resource_id}, "
            f"available={self.available}, held={self.held}, booked={self.booked}, "
            f"total={self.total_capacity})>"
        )
