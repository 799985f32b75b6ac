from ticketing.schemas.common import CamelModel, ErrorResponse
from ticketing.schemas.booking import (
    BookingCreate, BookingSummary, BookingDetail, BookingCancelResponse,
    UserAction, HoldCreate, HoldResponse, HoldReleaseResponse,
)
from ticketing.schemas.payment import (
    PaymentInitiate, PaymentInitiateResponse, WebhookAckResponse, PaymentSimulate,
    FakeCheckoutResponse, RefundResponse, PaymentStatusResponse,
)
from ticketing.schemas.show import SeatAvailabilityResponse, ShowSeatsResponse

__all__ = [
    "CamelModel", "ErrorResponse",
    "BookingCreate", "BookingSummary", "BookingDetail", "BookingCancelResponse",
    "UserAction", "HoldCreate", "HoldResponse", "HoldReleaseResponse",
    "PaymentInitiate", "PaymentInitiateResponse", "WebhookAckResponse", "PaymentSimulate",
    "FakeCheckoutResponse", "RefundResponse", "PaymentStatusResponse",
    "SeatAvailabilityResponse", "ShowSeatsResponse",
]
