"""
Pydantic schemas for payment request/response validation.

The webhook body is deliberately absent: it is read raw, because the
signature covers the exact bytes the gateway sent.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from ticketing.models.enums import BookingStatus, PaymentStatus
from ticketing.schemas.common import CamelModel


class PaymentInitiate(CamelModel):
    booking_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1, max_length=64)


class PaymentInitiateResponse(CamelModel):
    payment_id: str
    session_id: str
    payment_url: str
    expires_at: datetime
    amount: int
    currency: str
    status: PaymentStatus


class WebhookAckResponse(CamelModel):
    success: bool
    message: str


class PaymentSimulate(CamelModel):
    result: Literal["success", "failed"] = "success"


class FakeCheckoutResponse(CamelModel):
    message: str
    session_id: str
    booking_id: str
    amount: int
    currency: str
    status: str
    expires_at: datetime
    instructions: list[str]
    complete_url: str


class RefundResponse(CamelModel):
    booking_id: str
    original_amount: int
    refund_amount: int
    refund_percentage: int
    refund_id: str
    status: BookingStatus


class PaymentAttempt(CamelModel):
    id: str
    status: PaymentStatus
    amount: int
    reference: str
    gateway_ref: Optional[str]
    created_at: datetime


class PaymentStatusResponse(CamelModel):
    booking_id: str
    booking_status: BookingStatus
    total_amount: int
    payments: list[PaymentAttempt]
