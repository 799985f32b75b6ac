"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .session_store import PaymentSession, PaymentSessionStore
from .memory_session_store import InMemorySessionStore

__all__ = ['PaymentSession', 'PaymentSessionStore', 'InMemorySessionStore']
