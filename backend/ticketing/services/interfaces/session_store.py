"""
Payment session store interface.
Lets the simulated gateway keep sessions in process memory or in Redis.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional


@dataclass
class PaymentSession:
    """Gateway-side checkout session; its expiry is independent of the booking's."""

    session_id: str
    booking_id: str
    amount: int
    currency: str
    payment_url: str
    expires_at: datetime
    status: str = "pending"  # pending, completed, failed, expired

    def to_json(self) -> str:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat()
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "PaymentSession":
        data = json.loads(raw)
        data["expires_at"] = datetime.fromisoformat(data["expires_at"])
        return cls(**data)


class PaymentSessionStore(ABC):
    """
    Interface for payment session storage.

    Implementations:
    - InMemorySessionStore: single process, lost on restart
    - RedisSessionStore: shared by every instance, TTL-bound
    """

    @abstractmethod
    async def save(self, session: PaymentSession) -> None:
        """Insert or overwrite a session."""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[PaymentSession]:
        """Return the session, or None if unknown."""
