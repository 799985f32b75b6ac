from ticketing.models.show import Show, ShowSeat
from ticketing.models.booking import Booking, BookingSeat, SeatHold
from ticketing.models.payment import Payment, WebhookEvent
from ticketing.models.job_lock import JobLock

__all__ = [
    "Show", "ShowSeat",
    "Booking", "BookingSeat", "SeatHold",
    "Payment", "WebhookEvent",
    "JobLock",
]
