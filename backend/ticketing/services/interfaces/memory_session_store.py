"""
In-memory payment session store.
"""

from typing import Optional

from ticketing.services.interfaces.session_store import PaymentSession, PaymentSessionStore


class InMemorySessionStore(PaymentSessionStore):
    """
    Sessions in a dict owned by this process.

    Use when:
    - Running a single instance (local development, tests)
    - Losing open checkout sessions on restart is acceptable
    """

    def __init__(self):
        self._sessions: dict[str, PaymentSession] = {}

    async def save(self, session: PaymentSession) -> None:
        self._sessions[session.session_id] = session

    async def get(self, session_id: str) -> Optional[PaymentSession]:
        return self._sessions.get(session_id)
