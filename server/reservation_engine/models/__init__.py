"""Models module exporting all database models."""

from .booking import (
    BOOKING_STATUS_LABELS,
    BOOKING_STATUS_TRANSITIONS,
    Booking,
    BookingStatus,
    allowed_transitions,
    can_transition,
    is_active,
    is_terminal,
)
from .departure import (
    DEPARTURE_STATUS_LABELS,
    RESOURCE_TYPE_LABELS,
    Departure,
    DepartureResource,
    DepartureStatus,
    ResourceType,
)

__all__ = [
    # Inventory entities
    "Departure",
    "DepartureResource",
    "DepartureStatus",
    "ResourceType",
    "DEPARTURE_STATUS_LABELS",
    "RESOURCE_TYPE_LABELS",

    # Booking entity
    "Booking",
    "BookingStatus",
    "BOOKING_STATUS_LABELS",
    "BOOKING_STATUS_TRANSITIONS",
    "allowed_transitions",
    "can_transition",
    "is_active",
    "is_terminal",
]
