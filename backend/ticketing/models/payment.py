"""
Payment attempts and the webhook idempotency ledger.
"""

from sqlalchemy import JSON, Column, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from ticketing.db.base import Base, TimestampMixin, UTCDateTime, new_id, utcnow
from ticketing.models.enums import PaymentStatus


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=new_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    status = Column(
        Enum(PaymentStatus, name="payment_status", native_enum=False, length=20),
        nullable=False,
        default=PaymentStatus.INITIATED,
    )
    reference = Column(String(128), nullable=False, unique=True)  # gateway session id
    gateway_ref = Column(String(128), nullable=True)
    gateway_data = Column(JSON, nullable=True)

    booking = relationship("Booking", back_populates="payments")

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, booking={self.booking_id}, status={self.status})>"


class WebhookEvent(Base):
    """
    One row per processed (session_id, event_type). Inserted in the same
    transaction as the state change it caused; the unique constraint makes a
    second delivery of the same event fail instead of applying twice.
    """

    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String(128), nullable=False)
    event_type = Column(String(64), nullable=False)
    outcome = Column(String(32), nullable=False)  # processed, ignored
    processed_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("session_id", "event_type", name="uq_webhook_session_event"),
    )

    def __repr__(self) -> str:
        return f"<WebhookEvent(session={self.session_id}, type={self.event_type})>"
