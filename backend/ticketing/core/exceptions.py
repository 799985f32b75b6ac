"""
Error taxonomy for the booking engine.

Services raise these; the API layer maps them to HTTP responses in
ticketing.api.errors. Nothing below the routes raises HTTPException.
"""


class BookingSystemError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(BookingSystemError):
    """Malformed or nonexistent references. The client must fix its input."""

    status_code = 400
    code = "validation_error"


class ConflictError(BookingSystemError):
    """Seat already booked or held. The client should re-query availability."""

    status_code = 400
    code = "conflict"


class InvalidStateError(BookingSystemError):
    """Operation not valid for the current lifecycle state."""

    status_code = 400
    code = "invalid_state"


class ForbiddenError(BookingSystemError):
    """Ownership violation or bad webhook signature."""

    status_code = 403
    code = "forbidden"


class NotFoundError(BookingSystemError):
    status_code = 404
    code = "not_found"


class InternalError(BookingSystemError):
    status_code = 500
    code = "internal_error"


class PaymentGatewayError(InternalError):
    """The external gateway rejected or failed a call."""

    status_code = 502
    code = "gateway_error"
