"""
SafeRide Exceptions

Error taxonomy shared by the matching services. Every error is recoverable by
the caller; the API layer maps them to HTTP responses via ``status_code``.
"""


class SafeRideError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    error_code = "saferide_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class NotFoundError(SafeRideError):
    """Request or match does not exist."""

    status_code = 404
    error_code = "not_found"


class UnauthorizedError(SafeRideError):
    """Caller does not own the resource or is not a participant."""

    status_code = 403
    error_code = "unauthorized"


class InvalidStateError(SafeRideError):
    """Operation not permitted in the current status."""

    status_code = 409
    error_code = "invalid_state"


class ConflictError(SafeRideError):
    """A request is already part of another active match, or a write lost a race."""

    status_code = 409
    error_code = "conflict"


class ValidationError(SafeRideError, ValueError):
    """Malformed input (seat count, distances, prices, request lists)."""

    status_code = 422
    error_code = "validation_error"


class DependencyUnavailableError(SafeRideError):
    """An essential dependency (the document store) failed."""

    status_code = 503
    error_code = "dependency_unavailable"
