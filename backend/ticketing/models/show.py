"""
Catalog rows the booking engine reads: shows and their sellable seats.

Movies, screens and theatres are owned by the catalog service; a show only
carries their opaque ids. ShowSeat rows are created once per show and are
the rows that get exclusively locked during booking creation.
"""

from sqlalchemy import Column, Enum, ForeignKey, Index, Integer, String, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from ticketing.db.base import Base, TimestampMixin, UTCDateTime, new_id
from ticketing.models.enums import SeatTier


class Show(Base, TimestampMixin):
    __tablename__ = "shows"

    id = Column(String(36), primary_key=True, default=new_id)
    movie_id = Column(String(36), nullable=False, index=True)
    screen_id = Column(String(36), nullable=False, index=True)
    start_time = Column(UTCDateTime(), nullable=False)

    seats = relationship("ShowSeat", back_populates="show", order_by="ShowSeat.seat_label")

    __table_args__ = (
        Index("ix_shows_start_time", "start_time"),
    )

    def __repr__(self) -> str:
        return f"<Show(id={self.id}, movie={self.movie_id}, start={self.start_time})>"


class ShowSeat(Base, TimestampMixin):
    __tablename__ = "show_seats"

    id = Column(String(36), primary_key=True, default=new_id)
    show_id = Column(String(36), ForeignKey("shows.id"), nullable=False, index=True)
    seat_label = Column(String(16), nullable=False)  # e.g. "A7"
    tier = Column(
        Enum(SeatTier, name="seat_tier", native_enum=False, length=16),
        nullable=False,
        default=SeatTier.REGULAR,
    )
    price = Column(Integer, nullable=False)  # minor units

    show = relationship("Show", back_populates="seats")

    __table_args__ = (
        UniqueConstraint("show_id", "seat_label", name="uq_show_seat_label"),
        CheckConstraint("price >= 0", name="check_show_seat_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<ShowSeat(id={self.id}, show={self.show_id}, label={self.seat_label}, price={self.price})>"
