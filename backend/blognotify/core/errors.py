"""
Centralized error handling for notification services and API routes.
Domain exceptions plus a rule table so routes stay thin and new error types are easy to add.
"""
from __future__ import annotations

from fastapi import HTTPException

# ---------------------------------------------------------------------------
# Constants: status codes
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_INTERNAL_ERROR = 500


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------


class NotifyError(Exception):
    """Base class for notification engine errors."""


class ValidationFailed(NotifyError):
    """Rejected input; carries the offending field so clients can point at it."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message

    def to_detail(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class SettingsValidationError(ValidationFailed):
    pass


class BroadcastValidationError(ValidationFailed):
    pass


class NotFoundError(NotifyError):
    def __init__(self, resource: str, resource_id: object) -> None:
        super().__init__(f"{resource} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


# ---------------------------------------------------------------------------
# Error rules: (exception type, status_code). First match wins.
# Add new rules here instead of scattering checks in routes.
# ---------------------------------------------------------------------------

ERROR_RULES: list[tuple[type[Exception], int]] = [
    (ValidationFailed, STATUS_BAD_REQUEST),
    (NotFoundError, STATUS_NOT_FOUND),
]


def error_to_http(exc: Exception) -> HTTPException:
    """
    Map a service exception into an HTTPException.
    Validation errors keep their field-level detail; anything unknown becomes a 500.
    """
    for exc_type, status_code in ERROR_RULES:
        if isinstance(exc, exc_type):
            detail = exc.to_detail() if isinstance(exc, ValidationFailed) else str(exc)
            return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(status_code=STATUS_INTERNAL_ERROR, detail=str(exc))
