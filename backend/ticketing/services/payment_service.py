"""
Payment adapter: checkout sessions, signed webhooks, refunds.

WEBHOOK IDEMPOTENCY
===================

Gateways deliver webhooks at least once, so the same (sessionId, eventType)
can arrive twice, possibly at the same moment on two instances.

  1. Verify the signature (terminal 403 on failure)
  2. Look the event up in the webhook_events ledger; if present, ack
  3. Lock booking then payment (same order as refunds), re-check the ledger
  4. Apply the state change and insert the ledger row, in ONE transaction

The ledger row has a unique constraint on (session_id, event_type). If two
deliveries race past step 2, the second one's insert fails, its transaction
rolls back and it acks as a duplicate. The state change is applied exactly
once either way, and a process restart forgets nothing.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.config import get_settings
from ticketing.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ticketing.core.logging import get_logger, log_context
from ticketing.core.metrics import record_refund, record_webhook
from ticketing.db.base import utcnow
from ticketing.db.locking import lock_rows, transaction
from ticketing.models import Booking, BookingSeat, Payment, SeatHold, Show, WebhookEvent
from ticketing.models.enums import BookingStatus, PaymentStatus, WebhookEventType
from ticketing.services.booking_service import lock_booking, release_booking_seats
from ticketing.services.lifecycle import transition_booking, transition_payment
from ticketing.services.payment_gateway import FakePaymentGateway, encode_payload

logger = get_logger(__name__)
settings = get_settings()

KNOWN_EVENT_TYPES = {event_type.value for event_type in WebhookEventType}


@dataclass(frozen=True)
class PaymentInitiation:
    payment_id: str
    session_id: str
    payment_url: str
    expires_at: datetime
    amount: int
    currency: str
    status: PaymentStatus


@dataclass(frozen=True)
class WebhookAck:
    success: bool
    message: str
    outcome: str  # processed, refunded, ignored, duplicate


@dataclass(frozen=True)
class RefundResult:
    booking_id: str
    original_amount: int
    refund_amount: int
    refund_percentage: int
    refund_id: str
    status: BookingStatus


@dataclass(frozen=True)
class PaymentStatusReport:
    booking_id: str
    booking_status: BookingStatus
    total_amount: int
    payments: list[Payment] = field(default_factory=list)


async def initiate_payment(
    db: AsyncSession,
    gateway: FakePaymentGateway,
    booking_id: str,
    user_id: str,
) -> PaymentInitiation:
    """Open a checkout session for a PENDING booking and record the attempt."""
    async with transaction(db):
        booking = await lock_booking(db, booking_id)

        if booking.user_id != user_id:
            raise ForbiddenError("You can only pay for your own bookings")

        status = BookingStatus(booking.status)
        if status != BookingStatus.PENDING:
            raise InvalidStateError(f"Cannot initiate payment for booking with status: {status.value}")

        now = utcnow()
        if booking.expires_at and now > booking.expires_at:
            raise InvalidStateError("Booking has expired. Please create a new booking.")

        show = await db.get(Show, booking.show_id)
        if now > show.start_time:
            raise InvalidStateError("Cannot pay for a show that has already started")

        session = await gateway.create_payment_session(
            booking_id, booking.total_amount, settings.PAYMENT_CURRENCY
        )
        payment = Payment(
            booking_id=booking_id,
            user_id=user_id,
            amount=booking.total_amount,
            status=PaymentStatus.INITIATED,
            reference=session.session_id,
            gateway_ref=session.session_id,
        )
        db.add(payment)
        await db.flush()

    logger.info(
        "payment_initiated",
        booking_id=booking_id,
        payment_id=payment.id,
        session_id=session.session_id,
        amount=payment.amount,
    )
    return PaymentInitiation(
        payment_id=payment.id,
        session_id=session.session_id,
        payment_url=session.payment_url,
        expires_at=session.expires_at,
        amount=payment.amount,
        currency=session.currency,
        status=PaymentStatus.INITIATED,
    )


def _parse_event(payload: str) -> dict:
    try:
        event = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValidationError("Webhook payload is not valid JSON") from e

    if not isinstance(event, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    if not isinstance(event.get("eventType"), str) or not isinstance(event.get("sessionId"), str):
        raise ValidationError("Webhook payload must include eventType and sessionId")
    return event


async def _already_processed(db: AsyncSession, session_id: str, event_type: str) -> bool:
    result = await db.execute(
        select(WebhookEvent.id).where(
            WebhookEvent.session_id == session_id,
            WebhookEvent.event_type == event_type,
        )
    )
    return result.first() is not None


def _metric_label(event_type: str) -> str:
    return event_type if event_type in KNOWN_EVENT_TYPES else "unknown"


async def handle_webhook(
    db: AsyncSession,
    gateway: FakePaymentGateway,
    payload: str,
    signature: Optional[str],
) -> WebhookAck:
    """
    Verify and apply one gateway event. ``payload`` must be the raw request
    body, byte for byte, since that is what the signature covers.
    """
    if not gateway.verify_webhook_signature(payload, signature):
        record_webhook("unknown", "rejected")
        raise ForbiddenError("Invalid webhook signature")

    event = _parse_event(payload)
    event_type = event["eventType"]
    session_id = event["sessionId"]
    label = _metric_label(event_type)

    with log_context(session_id=session_id, event_type=event_type):
        duplicate = WebhookAck(success=True, message="Event already processed", outcome="duplicate")
        try:
            async with transaction(db):
                if await _already_processed(db, session_id, event_type):
                    logger.info("webhook_duplicate")
                    record_webhook(label, "duplicate")
                    return duplicate

                outcome = await _apply_event(db, gateway, event)
                if outcome == "duplicate":
                    record_webhook(label, "duplicate")
                    return duplicate

                db.add(WebhookEvent(session_id=session_id, event_type=event_type, outcome=outcome))
                await db.flush()
        except IntegrityError:
            # A concurrent delivery of the same event committed first
            async with transaction(db):
                if not await _already_processed(db, session_id, event_type):
                    raise
            logger.info("webhook_duplicate_concurrent")
            record_webhook(label, "duplicate")
            return duplicate

        record_webhook(label, outcome)
        logger.info("webhook_handled", outcome=outcome)
        if outcome == "ignored":
            return WebhookAck(success=True, message=f"Ignored {event_type}", outcome=outcome)
        return WebhookAck(success=True, message=f"Processed {event_type}", outcome=outcome)


async def _apply_event(db: AsyncSession, gateway: FakePaymentGateway, event: dict) -> str:
    event_type = event["eventType"]
    session_id = event["sessionId"]

    result = await db.execute(select(Payment.id, Payment.booking_id).where(Payment.reference == session_id))
    row = result.first()
    if row is None:
        logger.warning("webhook_payment_not_found")
        raise NotFoundError("Payment not found")

    booking = await lock_booking(db, row.booking_id)
    payment = (await lock_rows(db, Payment, [row.id]))[0]

    if await _already_processed(db, session_id, event_type):
        return "duplicate"

    if event_type not in KNOWN_EVENT_TYPES:
        logger.warning("webhook_unknown_event_type")
        return "ignored"

    # A FAILED payment may still see payment.failed / payment.expired
    payment_status = PaymentStatus(payment.status)
    if payment_status in (PaymentStatus.SUCCESS, PaymentStatus.REFUNDED) or (
        payment_status == PaymentStatus.FAILED and event_type == WebhookEventType.PAYMENT_SUCCESS.value
    ):
        logger.info("webhook_payment_already_settled", payment_status=payment_status.value)
        return "ignored"

    now = utcnow()
    if event_type == WebhookEventType.PAYMENT_SUCCESS.value:
        return await _payment_succeeded(db, gateway, booking, payment, event.get("gatewayRef"), now)
    if event_type == WebhookEventType.PAYMENT_FAILED.value:
        return _payment_failed(booking, payment, now)
    return await _payment_expired(db, booking, payment, now)


async def _payment_succeeded(
    db: AsyncSession,
    gateway: FakePaymentGateway,
    booking: Booking,
    payment: Payment,
    gateway_ref: Optional[str],
    now: datetime,
) -> str:
    transition_payment(payment, PaymentStatus.SUCCESS)
    if gateway_ref:
        payment.gateway_ref = gateway_ref
    gateway_data = {"confirmedAt": now.isoformat()}

    if BookingStatus(booking.status) != BookingStatus.PENDING:
        # Money captured for a booking that already gave its seats up; hand it back
        refund = await gateway.refund(payment.reference, payment.amount)
        transition_payment(payment, PaymentStatus.REFUNDED)
        payment.gateway_data = {
            **gateway_data,
            "refundId": refund["refundId"],
            "refundAmount": payment.amount,
            "refundPercentage": 100,
            "refundedAt": now.isoformat(),
            "refundReason": f"booking {BookingStatus(booking.status).value}",
        }
        record_refund(100)
        logger.warning(
            "late_payment_refunded",
            booking_id=booking.id,
            booking_status=BookingStatus(booking.status).value,
            refund_id=refund["refundId"],
            amount=payment.amount,
        )
        return "refunded"

    payment.gateway_data = gateway_data
    transition_booking(booking, BookingStatus.CONFIRMED)

    seat_ids = select(BookingSeat.show_seat_id).where(BookingSeat.booking_id == booking.id)
    await db.execute(delete(SeatHold).where(SeatHold.show_seat_id.in_(seat_ids)))

    logger.info("booking_confirmed", booking_id=booking.id, payment_id=payment.id)
    return "processed"


def _payment_failed(booking: Booking, payment: Payment, now: datetime) -> str:
    transition_payment(payment, PaymentStatus.FAILED)
    payment.gateway_data = {**(payment.gateway_data or {}), "failedAt": now.isoformat()}

    if BookingStatus(booking.status) == BookingStatus.PENDING:
        grace_until = now + timedelta(minutes=settings.PAYMENT_RETRY_GRACE_MINUTES)
        if booking.expires_at is None or booking.expires_at < grace_until:
            booking.expires_at = grace_until
        logger.info("payment_failed_retry_allowed", booking_id=booking.id, expires_at=booking.expires_at.isoformat())
    return "processed"


async def _payment_expired(db: AsyncSession, booking: Booking, payment: Payment, now: datetime) -> str:
    transition_payment(payment, PaymentStatus.FAILED)
    payment.gateway_data = {**(payment.gateway_data or {}), "expiredAt": now.isoformat()}

    if BookingStatus(booking.status) == BookingStatus.PENDING:
        released = await release_booking_seats(db, booking.id)
        transition_booking(booking, BookingStatus.EXPIRED)
        logger.info("payment_expired_booking_released", booking_id=booking.id, seats_released=released)
    return "processed"


async def simulate_payment(
    db: AsyncSession,
    gateway: FakePaymentGateway,
    session_id: str,
    result: Optional[str] = "success",
) -> WebhookAck:
    """Play the customer on the checkout page, then deliver the signed webhook."""
    event = await gateway.simulate_payment_completion(session_id, result)
    payload = encode_payload(event)
    signature = gateway.generate_webhook_signature(payload)
    return await handle_webhook(db, gateway, payload, signature)


def refund_percentage(hours_until_show: float) -> int:
    """Share of the booking total returned, by lead time before the show."""
    if hours_until_show < 2:
        return 0
    if hours_until_show < 24:
        return 50
    return 100


async def process_refund(
    db: AsyncSession,
    gateway: FakePaymentGateway,
    booking_id: str,
    user_id: str,
) -> RefundResult:
    """
    Refund a CONFIRMED booking and release its seats.

    The booking row stays locked across the gateway call, so a second
    refund request waits and then fails the CONFIRMED check.
    """
    async with transaction(db):
        booking = await lock_booking(db, booking_id)

        if booking.user_id != user_id:
            raise ForbiddenError("You can only refund your own bookings")
        if BookingStatus(booking.status) != BookingStatus.CONFIRMED:
            raise InvalidStateError("Only confirmed bookings can be refunded")

        result = await db.execute(
            select(Payment)
            .where(Payment.booking_id == booking_id, Payment.status == PaymentStatus.SUCCESS)
            .order_by(Payment.created_at.desc())
            .limit(1)
            .with_for_update()
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            raise InvalidStateError("No successful payment found for this booking")

        show = await db.get(Show, booking.show_id)
        now = utcnow()
        hours_until_show = (show.start_time - now).total_seconds() / 3600
        percentage = refund_percentage(hours_until_show)
        refund_amount = booking.total_amount * percentage // 100

        refund = await gateway.refund(payment.reference, refund_amount)

        transition_payment(payment, PaymentStatus.REFUNDED)
        payment.gateway_data = {
            **(payment.gateway_data or {}),
            "refundId": refund["refundId"],
            "refundAmount": refund_amount,
            "refundPercentage": percentage,
            "refundedAt": now.isoformat(),
        }
        released = await release_booking_seats(db, booking_id)
        transition_booking(booking, BookingStatus.REFUNDED)
        original_amount = booking.total_amount

    record_refund(percentage)
    logger.info(
        "booking_refunded",
        booking_id=booking_id,
        refund_id=refund["refundId"],
        refund_amount=refund_amount,
        refund_percentage=percentage,
        seats_released=released,
    )
    return RefundResult(
        booking_id=booking_id,
        original_amount=original_amount,
        refund_amount=refund_amount,
        refund_percentage=percentage,
        refund_id=refund["refundId"],
        status=BookingStatus.REFUNDED,
    )


async def get_payment_status(db: AsyncSession, booking_id: str) -> PaymentStatusReport:
    async with transaction(db):
        booking = await db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError(f"Booking not found: {booking_id}")

        result = await db.execute(
            select(Payment)
            .where(Payment.booking_id == booking_id)
            .order_by(Payment.created_at.desc())
        )
        return PaymentStatusReport(
            booking_id=booking_id,
            booking_status=BookingStatus(booking.status),
            total_amount=booking.total_amount,
            payments=list(result.scalars().all()),
        )
