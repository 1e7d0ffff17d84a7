"""
Error taxonomy for the booking core.

Every failure raised by the service layer is a ``BookingError`` carrying the
HTTP status it maps to and a stable ``code`` for clients. Route handlers do
not catch these; the handler registered in ``create_app`` renders them.
"""


class BookingError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, field: str | None = None, **details):
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.field:
            body["field"] = self.field
        body.update(self.details)
        return body


class InvalidInput(BookingError):
    status_code = 400
    code = "invalid_input"


class NotFound(BookingError):
    status_code = 404
    code = "not_found"


class AccessDenied(BookingError):
    status_code = 403
    code = "access_denied"


class LockInvalid(AccessDenied):
    code = "lock_invalid"


class TenantMismatch(AccessDenied):
    code = "tenant_mismatch"


class Conflict(BookingError):
    status_code = 409
    code = "conflict"


class CapacityUnavailable(Conflict):
    code = "capacity_unavailable"


class NotEnoughCapacity(Conflict):
    code = "not_enough_capacity"


class LockExpired(Conflict):
    code = "lock_expired"


class InvalidStateTransition(Conflict):
    code = "invalid_state_transition"


class DependencyFailure(BookingError):
    """A notification/invoice collaborator failed. Never escapes a committed booking."""
    status_code = 502
    code = "dependency_failure"
