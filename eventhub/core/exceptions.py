"""
Domain errors raised by the event lifecycle.
Each error carries a stable code and the HTTP status it maps to.
"""

from typing import Any, Dict, Optional


class EventHubError(Exception):
    """Base class for all EventHub domain errors."""

    error_code = "EVENTHUB_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "error_code": self.error_code,
            "error_message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(EventHubError):
    """Missing or malformed input."""

    error_code = "VALIDATION_ERROR"
    status_code = 422


class NotFoundError(EventHubError):
    """Unknown id, or an event the caller may not see."""

    error_code = "NOT_FOUND"
    status_code = 404


class PermissionDeniedError(EventHubError):
    """Authenticated but insufficiently privileged."""

    error_code = "PERMISSION_DENIED"
    status_code = 403


class ConflictError(EventHubError):
    """Duplicate registration, or unregistering while not registered."""

    error_code = "CONFLICT"
    status_code = 409


class CapacityError(EventHubError):
    """Event is full."""

    error_code = "EVENT_FULL"
    status_code = 409


class AuthError(EventHubError):
    """Bad or missing credential."""

    error_code = "AUTH_ERROR"
    status_code = 401
