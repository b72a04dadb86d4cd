"""Domain exceptions following RFC 9457 Problem Details."""

import uuid
from typing import Any, Dict, Optional

from .clock import utcnow


class ReservationError(Exception):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    Services raise subclasses of this error; the engine boundary turns them
    into failed ``ServiceResult`` values so that callers can map
    ``status_code`` onto whatever transport they expose.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP-equivalent status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        # Create the problem details object
        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        # Add extensions
        self.problem_details.update(self.extensions)

        super().__init__(detail or title)


class NotFoundError(ReservationError):
    """Exception for an absent departure, resource or booking."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class InvalidStateError(ReservationError):
    """Exception when the current state does not allow the requested operation."""

    def __init__(
        self,
        detail: str = "The resource is not in a state that allows this operation",
        current_state: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if current_state:
            extensions["current_state"] = current_state

        super().__init__(
            status_code=400,
            title="Invalid State",
            detail=detail,
            type_uri="https://example.com/problems/invalid-state",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ReservationError):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri="https://example.com/problems/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


class InsufficientCapacityError(ConflictError):
    """Exception when a resource cannot cover the requested quantity."""

    def __init__(self, departure_id: str, resource_id: str, requested_quantity: int):
        super().__init__(
            detail=(
                f"No capacity available on resource {resource_id} of departure "
                f"{departure_id} for {requested_quantity} unit(s)"
            ),
            conflicting_resource={
                "departure_id": departure_id,
                "resource_id": resource_id,
                "requested_quantity": requested_quantity,
            },
        )
        self.problem_details.update({
            "code": "NO_CAPACITY",
            "retryable": True,
        })


class InternalError(ReservationError):
    """Exception for broken capacity invariants; always a bug, never user error."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred while processing the request",
        error_id: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not error_id:
            error_id = str(uuid.uuid4())
        self.error_id = error_id

        extensions = {
            "error_id": error_id,
            "timestamp": utcnow().isoformat(),
        }

        super().__init__(
            status_code=500,
            title="Internal Server Error",
            detail=detail,
            type_uri="https://example.com/problems/internal-server-error",
            instance=instance,
            extensions=extensions,
        )
