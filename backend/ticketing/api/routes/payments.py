"""
Payment endpoints: checkout, gateway webhook, refunds, and the simulated
checkout page used in development and tests.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.exceptions import ForbiddenError, NotFoundError
from ticketing.db.session import get_db
from ticketing.schemas.booking import UserAction
from ticketing.schemas.payment import (
    FakeCheckoutResponse,
    PaymentAttempt,
    PaymentInitiate,
    PaymentInitiateResponse,
    PaymentSimulate,
    PaymentStatusResponse,
    RefundResponse,
    WebhookAckResponse,
)
from ticketing.services import payment_service
from ticketing.services.payment_gateway import FakePaymentGateway, get_payment_gateway

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/initiate", response_model=PaymentInitiateResponse)
async def initiate_payment(
    body: PaymentInitiate,
    db: AsyncSession = Depends(get_db),
    gateway: FakePaymentGateway = Depends(get_payment_gateway),
):
    """Open a checkout session for a PENDING booking. Returns the payment URL."""
    result = await payment_service.initiate_payment(db, gateway, body.booking_id, body.user_id)
    return PaymentInitiateResponse(
        payment_id=result.payment_id,
        session_id=result.session_id,
        payment_url=result.payment_url,
        expires_at=result.expires_at,
        amount=result.amount,
        currency=result.currency,
        status=result.status,
    )


@router.post("/webhook", response_model=WebhookAckResponse)
async def payment_webhook(
    request: Request,
    x_payment_signature: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
    gateway: FakePaymentGateway = Depends(get_payment_gateway),
):
    """
    Gateway callback. Signed with the x-payment-signature header over the
    raw body. Redeliveries of a processed event are acknowledged with 200.
    """
    try:
        payload = (await request.body()).decode("utf-8")
    except UnicodeDecodeError as e:
        # The gateway only ever signs UTF-8 JSON
        raise ForbiddenError("Invalid webhook signature") from e
    ack = await payment_service.handle_webhook(db, gateway, payload, x_payment_signature)
    return WebhookAckResponse(success=ack.success, message=ack.message)


@router.post("/simulate/{session_id}", response_model=WebhookAckResponse)
async def simulate_payment(
    session_id: str,
    body: Optional[PaymentSimulate] = None,
    db: AsyncSession = Depends(get_db),
    gateway: FakePaymentGateway = Depends(get_payment_gateway),
):
    """Complete a fake checkout session (testing only)."""
    result = body.result if body else "success"
    ack = await payment_service.simulate_payment(db, gateway, session_id, result)
    return WebhookAckResponse(success=ack.success, message=ack.message)


@router.get("/fake-checkout/{session_id}", response_model=FakeCheckoutResponse)
async def fake_checkout_page(
    session_id: str,
    gateway: FakePaymentGateway = Depends(get_payment_gateway),
):
    """Stand-in for the gateway's hosted checkout page (testing only)."""
    session = await gateway.get_session(session_id)
    if session is None:
        raise NotFoundError(f"Session not found: {session_id}")

    complete_url = f"/api/v1/payments/simulate/{session_id}"
    return FakeCheckoutResponse(
        message="Fake Payment Gateway Checkout",
        session_id=session.session_id,
        booking_id=session.booking_id,
        amount=session.amount,
        currency=session.currency,
        status=session.status,
        expires_at=session.expires_at,
        instructions=[
            "This simulates a payment gateway checkout page.",
            f'To complete payment, call POST {complete_url} with {{"result": "success"}}',
            'To simulate failed payment, use {"result": "failed"}',
        ],
        complete_url=complete_url,
    )


@router.post("/refund/{booking_id}", response_model=RefundResponse)
async def refund_booking(
    booking_id: str,
    body: UserAction,
    db: AsyncSession = Depends(get_db),
    gateway: FakePaymentGateway = Depends(get_payment_gateway),
):
    """
    Refund a CONFIRMED booking: 100% more than 24h before the show, 50%
    within 24h, nothing within 2h. Seats are released either way.
    """
    result = await payment_service.process_refund(db, gateway, booking_id, body.user_id)
    return RefundResponse(
        booking_id=result.booking_id,
        original_amount=result.original_amount,
        refund_amount=result.refund_amount,
        refund_percentage=result.refund_percentage,
        refund_id=result.refund_id,
        status=result.status,
    )


@router.get("/status/{booking_id}", response_model=PaymentStatusResponse)
async def payment_status(booking_id: str, db: AsyncSession = Depends(get_db)):
    report = await payment_service.get_payment_status(db, booking_id)
    return PaymentStatusResponse(
        booking_id=report.booking_id,
        booking_status=report.booking_status,
        total_amount=report.total_amount,
        payments=[PaymentAttempt.model_validate(payment) for payment in report.payments],
    )
