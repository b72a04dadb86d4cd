"""Departure-related Pydantic schemas."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..models.departure import DepartureStatus, ResourceType
from .common import UtcDateTime


class DepartureResourceInput(BaseModel):
    """One capacity pool supplied when creating a departure."""

    resource_type: ResourceType = Field(..., description="Kind of capacity pool")
    child_entity_code: str = Field(..., min_length=1, max_length=128, description="Catalog item sold by this resource")
    total_capacity: int = Field(..., ge=1, description="Units offered by this resource")
    price_override: Optional[int] = Field(None, ge=0, description="Unit price in minor units, replacing the catalog price")
    currency: Optional[str] = Field(None, pattern=r"^[A-Z]{3}$", description="ISO 4217 currency of the override")


class CreateDepartureRequest(BaseModel):
    """Request schema for creating a departure."""

    product_entity_code: str = Field(..., min_length=1, max_length=128, description="Bookable catalog product")
    label: str = Field(..., min_length=1, max_length=255, description="Human readable departure label")
    starts_at: UtcDateTime = Field(..., description="Departure start time (ISO 8601)")
    ends_at: Optional[UtcDateTime] = Field(None, description="Departure end time (ISO 8601)")
    booking_cutoff_at: Optional[UtcDateTime] = Field(None, description="No new holds after this instant")
    hold_ttl_ms: Optional[int] = Field(None, ge=1000, description="Hold duration in milliseconds")
    resources: list[DepartureResourceInput] = Field(..., min_length=1, description="Capacity pools")

    @model_validator(mode="after")
    def check_dates(self) -> "CreateDepartureRequest":
        if self.ends_at is not None and self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class UpdateDepartureRequest(BaseModel):
    """Partial update of a departure. Capacity counters cannot be changed."""

    label: Optional[str] = Field(None, min_length=1, max_length=255)
    starts_at: Optional[UtcDateTime] = None
    ends_at: Optional[UtcDateTime] = None
    booking_cutoff_at: Optional[UtcDateTime] = None
    hold_ttl_ms: Optional[int] = Field(None, ge=1000)
    status: Optional[DepartureStatus] = None

    @field_validator("label", "starts_at", "hold_ttl_ms", "status")
    @classmethod
    def reject_null(cls, v, info):
        """These columns are required; leave a field unset to keep its value."""
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @model_validator(mode="after")
    def check_dates(self) -> "UpdateDepartureRequest":
        if self.starts_at and self.ends_at and self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class DepartureListFilters(BaseModel):
    """Filters and paging for departure listings."""

    product_entity_code: Optional[str] = Field(None, description="Filter by product")
    status: Optional[DepartureStatus] = Field(None, description="Filter by status")
    date_from: Optional[UtcDateTime] = Field(None, description="Earliest starts_at (inclusive)")
    date_to: Optional[UtcDateTime] = Field(None, description="Latest starts_at (inclusive)")
    page: int = Field(1, ge=1, description="Page number (1-based)")
    limit: Optional[int] = Field(None, ge=1, description="Results per page")


class DepartureResourceOut(BaseModel):
    """Departure resource response schema."""

    model_config = {"from_attributes": True}

    resource_id: str
    resource_type: str
    child_entity_code: str
    price_override: Optional[int] = None
    currency: Optional[str] = None
    total_capacity: int
    available: int
    held: int
    booked: int


class DepartureOut(BaseModel):
    """Departure response schema."""

    model_config = {"from_attributes": True}

    departure_id: str = Field(..., description="Unique departure ID")
    tenant_id: str
    product_entity_code: str
    label: str
    status: DepartureStatus
    starts_at: UtcDateTime
    ends_at: Optional[UtcDateTime] = None
    booking_cutoff_at: Optional[UtcDateTime] = None
    hold_ttl_ms: int
    resources: list[DepartureResourceOut] = Field(default_factory=list)
    created_at: Optional[UtcDateTime] = None
    updated_at: Optional[UtcDateTime] = None
