"""
Pydantic schemas for booking and hold request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from ticketing.models import Booking
from ticketing.models.enums import BookingStatus, PaymentStatus, SeatTier
from ticketing.schemas.common import CamelModel


class BookingCreate(CamelModel):
    user_id: str = Field(min_length=1, max_length=64)
    show_id: str = Field(min_length=1)
    seat_ids: list[str] = Field(min_length=1)
    idempotency_key: Optional[str] = Field(default=None, min_length=1, max_length=128)


class BookingSummary(CamelModel):
    booking_id: str
    show_id: str
    seat_ids: list[str]
    status: BookingStatus
    expires_at: Optional[datetime]
    total_amount: int
    message: str


class UserAction(CamelModel):
    """Body for actions that only need the acting user."""

    user_id: str = Field(min_length=1, max_length=64)


class BookingCancelResponse(CamelModel):
    booking_id: str
    status: BookingStatus
    message: str


class BookedSeat(CamelModel):
    show_seat_id: str
    seat_label: str
    tier: SeatTier
    price: int


class ShowSummary(CamelModel):
    id: str
    movie_id: str
    screen_id: str
    start_time: datetime


class PaymentSummary(CamelModel):
    id: str
    status: PaymentStatus
    amount: int
    reference: str
    created_at: datetime


class BookingDetail(CamelModel):
    id: str
    user_id: str
    show_id: str
    status: BookingStatus
    payment_ref: str
    total_amount: int
    expires_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    show: ShowSummary
    seats: list[BookedSeat]
    latest_payment: Optional[PaymentSummary] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingDetail":
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            show_id=booking.show_id,
            status=booking.status,
            payment_ref=booking.payment_ref,
            total_amount=booking.total_amount,
            expires_at=booking.expires_at,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
            show=ShowSummary.model_validate(booking.show),
            seats=[
                BookedSeat(
                    show_seat_id=seat.show_seat_id,
                    seat_label=seat.show_seat.seat_label,
                    tier=seat.show_seat.tier,
                    price=seat.show_seat.price,
                )
                for seat in booking.seats
            ],
            latest_payment=(
                PaymentSummary.model_validate(booking.payments[0]) if booking.payments else None
            ),
        )


class HoldCreate(CamelModel):
    user_id: str = Field(min_length=1, max_length=64)
    show_id: str = Field(min_length=1)
    seat_ids: list[str] = Field(min_length=1)


class HoldResponse(CamelModel):
    user_id: str
    show_id: str
    seat_ids: list[str]
    expires_at: datetime
    message: str


class HoldReleaseResponse(CamelModel):
    released: int
    message: str
