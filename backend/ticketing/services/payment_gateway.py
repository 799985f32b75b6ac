"""
Simulated payment gateway.

Behaves like a hosted-checkout provider (Stripe Checkout, Razorpay):

1. create_payment_session() opens a checkout session with its own expiry
2. simulate_payment_completion() stands in for the customer paying on the
   provider's page and produces the webhook event the provider would send
3. Webhooks are signed ``t=<unix>,v1=<hmac>`` and verified on receipt
4. refund() returns a refund id for a captured session

Replace with the real provider SDK in production; the rest of the system
only depends on the methods below.
"""

import json
import random
import secrets
import time
from datetime import timedelta
from typing import Optional

from ticketing.core.config import get_settings
from ticketing.core.exceptions import InvalidStateError, NotFoundError, PaymentGatewayError
from ticketing.core.logging import get_logger
from ticketing.core.signing import sign_payload, verify_signature
from ticketing.db.base import utcnow
from ticketing.models.enums import WebhookEventType
from ticketing.services.interfaces.session_store import PaymentSession, PaymentSessionStore
from ticketing.services.strategy_factory import get_session_store

logger = get_logger(__name__)
settings = get_settings()


def encode_payload(payload: dict) -> str:
    """Compact JSON, the exact bytes that get signed and delivered."""
    return json.dumps(payload, separators=(",", ":"))


class FakePaymentGateway:
    def __init__(
        self,
        store: PaymentSessionStore,
        webhook_secret: str,
        success_rate: int = 90,
        session_minutes: int = 30,
        base_url: str = "http://localhost:8001",
        tolerance: int = 300,
    ):
        self.store = store
        self.webhook_secret = webhook_secret
        self.success_rate = success_rate
        self.session_minutes = session_minutes
        self.base_url = base_url.rstrip("/")
        self.tolerance = tolerance

    async def create_payment_session(
        self,
        booking_id: str,
        amount: int,
        currency: str = "INR",
    ) -> PaymentSession:
        session_id = f"ps_{secrets.token_hex(16)}"
        session = PaymentSession(
            session_id=session_id,
            booking_id=booking_id,
            amount=amount,
            currency=currency,
            payment_url=f"{self.base_url}/api/v1/payments/fake-checkout/{session_id}",
            expires_at=utcnow() + timedelta(minutes=self.session_minutes),
        )
        await self.store.save(session)
        logger.info("payment_session_created", session_id=session_id, booking_id=booking_id, amount=amount)
        return session

    async def get_session(self, session_id: str) -> Optional[PaymentSession]:
        return await self.store.get(session_id)

    async def simulate_payment_completion(
        self,
        session_id: str,
        force_result: Optional[str] = None,
    ) -> dict:
        """
        Settle a pending session and return the webhook event for it.

        ``force_result`` is "success" or "failed"; without it the outcome is
        drawn from success_rate. A session past its expiry yields
        payment.expired whatever was asked for.
        """
        session = await self.store.get(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")
        if session.status != "pending":
            raise InvalidStateError(f"Session already processed: {session.status}")

        if utcnow() > session.expires_at:
            session.status = "expired"
            event_type = WebhookEventType.PAYMENT_EXPIRED
        else:
            if force_result:
                succeeded = force_result == "success"
            else:
                succeeded = random.random() * 100 < self.success_rate
            session.status = "completed" if succeeded else "failed"
            event_type = WebhookEventType.PAYMENT_SUCCESS if succeeded else WebhookEventType.PAYMENT_FAILED
        await self.store.save(session)

        logger.info("payment_session_settled", session_id=session_id, event_type=event_type.value)
        return {
            "eventType": event_type.value,
            "sessionId": session_id,
            "bookingId": session.booking_id,
            "amount": session.amount,
            "timestamp": int(time.time() * 1000),
            "gatewayRef": f"gw_{secrets.token_hex(8)}",
        }

    def generate_webhook_signature(self, payload: str, timestamp: Optional[int] = None) -> str:
        return sign_payload(self.webhook_secret, payload, timestamp)

    def verify_webhook_signature(self, payload: str, signature: Optional[str]) -> bool:
        return verify_signature(self.webhook_secret, payload, signature, tolerance=self.tolerance)

    async def refund(self, session_id: str, amount: int) -> dict:
        session = await self.store.get(session_id)
        if session is None:
            raise PaymentGatewayError(f"Refund rejected, unknown session: {session_id}")

        refund_id = f"rf_{secrets.token_hex(8)}"
        logger.info("refund_issued", session_id=session_id, refund_id=refund_id, amount=amount)
        return {"refundId": refund_id, "status": "succeeded", "amount": amount}


# Singleton instance
_gateway: Optional[FakePaymentGateway] = None


def get_payment_gateway() -> FakePaymentGateway:
    """Get payment gateway singleton. Overridable as a FastAPI dependency."""
    global _gateway
    if _gateway is None:
        _gateway = FakePaymentGateway(
            store=get_session_store(),
            webhook_secret=settings.PAYMENT_WEBHOOK_SECRET,
            success_rate=settings.PAYMENT_SUCCESS_RATE,
            session_minutes=settings.PAYMENT_SESSION_MINUTES,
            base_url=settings.PUBLIC_BASE_URL,
            tolerance=settings.WEBHOOK_TOLERANCE_SECONDS,
        )
    return _gateway
