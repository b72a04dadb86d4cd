"""Common Pydantic schemas."""

from datetime import datetime
from typing import Annotated, Any, Generic, List, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, Field

from ..core.clock import as_utc

T = TypeVar("T")


# Datetimes are compared and stored as aware UTC; naive input is taken as UTC.
UtcDateTime = Annotated[datetime, AfterValidator(as_utc)]


class Problem(BaseModel):
    """RFC 9457 Problem Details payload attached to failed results."""

    model_config = {"extra": "allow"}

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP-equivalent status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Application-specific error code")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")


class ServiceResult(BaseModel, Generic[T]):
    """Outcome of an engine operation: data on success, error details otherwise."""

    success: bool = Field(..., description="Whether the operation succeeded")
    data: Optional[T] = Field(None, description="Operation payload on success")
    error: Optional[str] = Field(None, description="Human-readable error on failure")
    http_status: int = Field(..., description="HTTP-equivalent status code")
    problem: Optional[Problem] = Field(None, description="Problem details on failure")

    @classmethod
    def ok(cls, data: Any = None, http_status: int = 200) -> "ServiceResult[T]":
        return cls(success=True, data=data, http_status=http_status)

    @classmethod
    def fail(cls, error: str, http_status: int, problem: Optional[dict] = None) -> "ServiceResult[T]":
        return cls(
            success=False,
            error=error,
            http_status=http_status,
            problem=Problem.model_validate(problem) if problem else None,
        )


class PaginatedResponse(BaseModel, Generic[T]):
    """Offset-paginated list of items."""

    items: List[T] = Field(..., description="Items on this page")
    total: int = Field(..., ge=0, description="Total number of matching items")
    page: int = Field(..., ge=1, description="Current page number (1-based)")
    limit: int = Field(..., ge=1, description="Page size")
    pages: int = Field(..., ge=0, description="Total number of pages")

    @classmethod
    def build(cls, items: List[Any], total: int, page: int, limit: int) -> "PaginatedResponse[T]":
        pages = (total + limit - 1) // limit
        return cls(items=items, total=total, page=page, limit=limit, pages=pages)
