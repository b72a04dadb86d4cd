"""Booking model definitions and booking status helpers."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    HELD = "held"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


BOOKING_STATUS_LABELS = {
    BookingStatus.HELD: "On hold",
    BookingStatus.CONFIRMED: "Confirmed",
    BookingStatus.CANCELLED: "Cancelled",
    BookingStatus.EXPIRED: "Expired",
}

# Allowed status moves; terminal statuses map to an empty set.
BOOKING_STATUS_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.HELD: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.EXPIRED,
    }),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.EXPIRED: frozenset(),
}


def allowed_transitions(status: BookingStatus | str) -> frozenset[BookingStatus]:
    """Return the statuses a booking in ``status`` may move to."""
    return BOOKING_STATUS_TRANSITIONS[BookingStatus(status)]


def can_transition(current: BookingStatus | str, target: BookingStatus | str) -> bool:
    """Return True if ``current -> target`` is a legal booking move."""
    return BookingStatus(target) in allowed_transitions(current)


def is_terminal(status: BookingStatus | str) -> bool:
    """Cancelled and expired bookings never change again."""
    return not allowed_transitions(status)


def is_active(status: BookingStatus | str) -> bool:
    """Held and confirmed bookings occupy capacity."""
    return BookingStatus(status) in (BookingStatus.HELD, BookingStatus.CONFIRMED)


class Booking(Base):
    """Booking entity: a quantity of one departure resource held or booked for a customer."""

    __tablename__ = "bookings"

    # Primary key
    booking_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # References by opaque id
    departure_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("departures.departure_id"),
        nullable=False,
        index=True
    )
    resource_id: Mapped[str] = mapped_column(String(32), nullable=False)
    child_entity_code: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # Departure snapshot
    departure_label: Mapped[str] = mapped_column(String(255), nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # Commercial details (minor units)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    total_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.HELD,
        index=True
    )

    # Lifecycle timing
    hold_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Expiry scheduler handle, cleared once the hold is resolved
    hold_job_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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
        CheckConstraint("quantity > 0", name="ck_booking_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_booking_unit_price_non_negative"),
        CheckConstraint("total_price >= 0", name="ck_booking_total_price_non_negative"),
        CheckConstraint("length(customer_id) > 0", name="ck_booking_customer_id_not_empty"),
        CheckConstraint(
            "status IN ('held', 'confirmed', 'cancelled', 'expired')",
            name="ck_booking_status_valid"
        ),
        Index("ix_bookings_status_hold_expires_at", "status", "hold_expires_at"),
    )

    @property
    def is_held(self) -> bool:
        return self.status == BookingStatus.HELD

    def __repr__(self) -> str:
        return (
            f"<Booking(booking_id={self.booking_id}, departure_id={self.departure_id}, "
            f"resource_id={self.resource_id}, quantity={self.quantity}, status={self.status})>"
        )
