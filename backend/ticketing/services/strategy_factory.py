"""
Payment session store factory.
Configures where the simulated gateway keeps its checkout sessions.
"""

from typing import Optional

from ticketing.core.config import get_settings
from ticketing.services.interfaces.session_store import PaymentSessionStore
from ticketing.services.interfaces.memory_session_store import InMemorySessionStore
from ticketing.services.redis_session_store import RedisSessionStore

settings = get_settings()


def get_session_store_strategy() -> PaymentSessionStore:
    """
    Get configured session store.

    - memory: InMemorySessionStore (single instance)
    - redis: RedisSessionStore (multiple instances)

    Selected by the PAYMENT_SESSION_STORE env var.
    """
    if settings.PAYMENT_SESSION_STORE == "redis":
        return RedisSessionStore()
    return InMemorySessionStore()


# Singleton instance
_store: Optional[PaymentSessionStore] = None


def get_session_store() -> PaymentSessionStore:
    """Get session store singleton."""
    global _store
    if _store is None:
        _store = get_session_store_strategy()
    return _store
