"""
Booking, BookingSeat and SeatHold.

Key design decisions:
- A BookingSeat row exists only while its booking owns the seat. Leaving
  PENDING/CONFIRMED deletes the rows in the same transaction as the status
  change, so "one active BookingSeat per show seat" is checked by a plain
  existence query under the seat row lock.
- payment_ref is unique and doubles as the client idempotency key.
- total_amount is a price snapshot taken at booking time, not a live join.
- SeatHold has no uniqueness constraint: a new hold deletes the user's
  previous holds first, and expired holds are filtered out by every reader.
"""

from sqlalchemy import Column, Enum, ForeignKey, Index, Integer, String, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from ticketing.db.base import Base, TimestampMixin, UTCDateTime, new_id, utcnow
from ticketing.models.enums import BookingStatus


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    show_id = Column(String(36), ForeignKey("shows.id"), nullable=False, index=True)
    status = Column(
        Enum(BookingStatus, name="booking_status", native_enum=False, length=20),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    payment_ref = Column(String(128), nullable=False, unique=True)
    total_amount = Column(Integer, nullable=False)
    expires_at = Column(UTCDateTime(), nullable=True)  # only while PENDING

    show = relationship("Show")
    seats = relationship("BookingSeat", back_populates="booking", order_by="BookingSeat.show_seat_id")
    payments = relationship("Payment", back_populates="booking", order_by="Payment.created_at.desc()")

    __table_args__ = (
        # Sweeper query: status = PENDING AND expires_at < now
        Index("ix_bookings_status_expires_at", "status", "expires_at"),
        CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, show={self.show_id}, status={self.status})>"


class BookingSeat(Base):
    __tablename__ = "booking_seats"

    id = Column(String(36), primary_key=True, default=new_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    show_seat_id = Column(String(36), ForeignKey("show_seats.id"), nullable=False, index=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    booking = relationship("Booking", back_populates="seats")
    show_seat = relationship("ShowSeat")

    __table_args__ = (
        UniqueConstraint("booking_id", "show_seat_id", name="uq_booking_seat"),
    )

    def __repr__(self) -> str:
        return f"<BookingSeat(booking={self.booking_id}, seat={self.show_seat_id})>"


class SeatHold(Base):
    __tablename__ = "seat_holds"

    id = Column(String(36), primary_key=True, default=new_id)
    show_seat_id = Column(String(36), ForeignKey("show_seats.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    expires_at = Column(UTCDateTime(), nullable=False, index=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<SeatHold(seat={self.show_seat_id}, user={self.user_id}, expires={self.expires_at})>"
