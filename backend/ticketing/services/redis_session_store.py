"""
Redis-backed payment session store.
Implements PaymentSessionStore so every API instance sees the same sessions.

Sessions are written with a TTL a little past their own expiry, so a
simulated completion after the deadline still finds the session and can
report payment.expired instead of "unknown session".
"""

from datetime import timedelta
from typing import Optional

from redis.exceptions import RedisError

from ticketing.core.exceptions import PaymentGatewayError
from ticketing.core.logging import get_logger
from ticketing.db.base import utcnow
from ticketing.infrastructure.redis_client import get_redis
from ticketing.services.interfaces.session_store import PaymentSession, PaymentSessionStore

logger = get_logger(__name__)

KEY_PREFIX = "payment_session:"
EXPIRED_RETENTION = timedelta(hours=1)


class RedisSessionStore(PaymentSessionStore):
    """
    Use when:
    - More than one API instance serves checkout traffic
    - Sessions must survive a process restart
    """

    async def _client(self):
        client = await get_redis()
        if client is None:
            raise PaymentGatewayError("Payment session store unavailable")
        return client

    async def save(self, session: PaymentSession) -> None:
        client = await self._client()
        ttl = max(int((session.expires_at + EXPIRED_RETENTION - utcnow()).total_seconds()), 1)
        try:
            await client.set(f"{KEY_PREFIX}{session.session_id}", session.to_json(), ex=ttl)
        except RedisError as e:
            logger.error("payment_session_save_failed", session_id=session.session_id, error=str(e))
            raise PaymentGatewayError("Could not store payment session") from e

    async def get(self, session_id: str) -> Optional[PaymentSession]:
        client = await self._client()
        try:
            raw = await client.get(f"{KEY_PREFIX}{session_id}")
        except RedisError as e:
            logger.error("payment_session_load_failed", session_id=session_id, error=str(e))
            raise PaymentGatewayError("Could not load payment session") from e
        return PaymentSession.from_json(raw) if raw else None
