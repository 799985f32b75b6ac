"""
Shared async Redis client.

Redis is optional: when it is disabled or unreachable get_redis() returns
None and callers degrade (health reports it, the Redis session store
refuses to work). PostgreSQL stays the source of truth for every booking
decision; nothing in the reservation path depends on Redis.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ticketing.core.config import get_settings
from ticketing.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        try:
            await client.ping()
        except RedisError as e:
            logger.error("redis_connection_failed", url=settings.REDIS_URL, error=str(e))
            await client.aclose()
            return None
        _redis_client = client
        logger.info("redis_connected", url=settings.REDIS_URL)

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_redis_status() -> dict:
    """Redis status for the health endpoint."""
    if not settings.REDIS_ENABLED:
        return {"status": "disabled"}

    client = await get_redis()
    if not client:
        return {"status": "unavailable"}

    try:
        await client.ping()
        info = await client.info("clients")
        return {"status": "connected", "clients": info.get("connected_clients", 0)}
    except RedisError as e:
        return {"status": "error", "error": str(e)}
