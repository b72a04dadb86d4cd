"""Booking-related Pydantic schemas."""

from typing import Optional

from pydantic import BaseModel, Field

from ..models.booking import BookingStatus
from .common import UtcDateTime


class HoldBookingRequest(BaseModel):
    """Request schema for placing a hold on departure capacity."""

    departure_id: str = Field(..., min_length=1, description="Departure to hold capacity on")
    resource_id: str = Field(..., min_length=1, description="Resource within the departure")
    customer_id: str = Field(..., min_length=1, max_length=128, description="Customer placing the hold")
    quantity: int = Field(..., ge=1, description="Units to hold")
    hold_ttl_ms: Optional[int] = Field(None, ge=1000, description="Hold duration override in milliseconds")
    order_id: Optional[str] = Field(None, max_length=128, description="Order the hold belongs to")
    notes: Optional[str] = Field(None, description="Free-text notes")


class ConfirmBookingRequest(BaseModel):
    """Request schema for confirming a held booking."""

    order_id: Optional[str] = Field(None, max_length=128, description="Order that paid for the booking")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    cancelled_by: str = Field(..., min_length=1, max_length=128, description="Who cancelled the booking")
    reason: Optional[str] = Field(None, description="Cancellation reason")


class BookingListFilters(BaseModel):
    """Filters and paging for booking listings."""

    departure_id: Optional[str] = Field(None, description="Filter by departure")
    customer_id: Optional[str] = Field(None, description="Filter by customer")
    status: Optional[BookingStatus] = Field(None, description="Filter by status")
    date_from: Optional[UtcDateTime] = Field(None, description="Earliest departure start (inclusive)")
    date_to: Optional[UtcDateTime] = Field(None, description="Latest departure start (inclusive)")
    page: int = Field(1, ge=1, description="Page number (1-based)")
    limit: Optional[int] = Field(None, ge=1, description="Results per page")


class BookingOut(BaseModel):
    """Booking response schema."""

    model_config = {"from_attributes": True}

    booking_id: str = Field(..., description="Unique booking ID")
    tenant_id: str
    departure_id: str
    resource_id: str
    child_entity_code: str
    customer_id: str
    order_id: Optional[str] = None
    departure_label: str
    starts_at: UtcDateTime
    quantity: int = Field(..., ge=1)
    unit_price: int = Field(..., ge=0, description="Unit price in minor units")
    currency: str
    total_price: int = Field(..., ge=0, description="Total price in minor units")
    status: BookingStatus
    hold_expires_at: Optional[UtcDateTime] = None
    confirmed_at: Optional[UtcDateTime] = None
    cancelled_at: Optional[UtcDateTime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    expired_at: Optional[UtcDateTime] = None
    hold_job_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[UtcDateTime] = None
    updated_at: Optional[UtcDateTime] = None
