"""Error taxonomy for intervention coordination.

Every error carries the HTTP status it maps to. Routers let these propagate;
``app.main`` renders them as ``{"success": false, "error": ..., "details": ...}``.
"""

from typing import Any


class InterventionServiceError(Exception):
    """Base exception for intervention coordination errors."""

    status_code = 400

    def __init__(self, message: str, details: Any | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(InterventionServiceError):
    """Malformed or missing fields for the requested planning mode."""

    status_code = 400


class AuthorizationError(InterventionServiceError):
    """Caller lacks the required role or belongs to another team."""

    status_code = 403


class NotFoundError(InterventionServiceError):
    """Intervention (or slot) does not exist."""

    status_code = 404


class StateConflictError(InterventionServiceError):
    """Intervention status does not allow the action."""

    status_code = 409


class SlotLockedError(StateConflictError):
    """A selected time slot already locks the intervention."""

    pass


class TransientStoreError(InterventionServiceError):
    """Database failure while mutating; the unit of work was rolled back."""

    status_code = 500


class DispatchError(Exception):
    """Notification or email delivery failure. Never surfaced to the caller."""

    pass


def error_envelope(exc: InterventionServiceError) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": exc.message}
    if exc.details is not None:
        body["details"] = exc.details
    return body
