"""
Show lookups and per-seat availability.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.exceptions import NotFoundError
from ticketing.core.logging import get_logger
from ticketing.db.base import utcnow
from ticketing.db.locking import transaction
from ticketing.models import Booking, BookingSeat, SeatHold, Show, ShowSeat
from ticketing.models.enums import ACTIVE_BOOKING_STATUSES, SeatAvailability, SeatTier

logger = get_logger(__name__)


@dataclass(frozen=True)
class SeatView:
    id: str
    seat_label: str
    tier: SeatTier
    price: int
    availability: SeatAvailability
    held_until: Optional[datetime] = None


async def get_show(db: AsyncSession, show_id: str) -> Show:
    """Get a single show by ID."""
    async with transaction(db):
        show = await db.get(Show, show_id)
    if show is None:
        raise NotFoundError(f"Show not found: {show_id}")
    return show


async def list_seat_availability(db: AsyncSession, show_id: str) -> list[SeatView]:
    """
    Every seat of the show with its current state. A snapshot only: a seat
    shown AVAILABLE can still lose the race at booking time.
    """
    now = utcnow()
    async with transaction(db):
        show = await db.get(Show, show_id)
        if show is None:
            raise NotFoundError(f"Show not found: {show_id}")

        seats = (
            await db.execute(
                select(ShowSeat).where(ShowSeat.show_id == show_id).order_by(ShowSeat.seat_label)
            )
        ).scalars().all()

        booked = set(
            (
                await db.execute(
                    select(BookingSeat.show_seat_id)
                    .join(Booking, Booking.id == BookingSeat.booking_id)
                    .join(ShowSeat, ShowSeat.id == BookingSeat.show_seat_id)
                    .where(ShowSeat.show_id == show_id, Booking.status.in_(ACTIVE_BOOKING_STATUSES))
                )
            ).scalars().all()
        )

        held: dict[str, datetime] = {}
        hold_rows = await db.execute(
            select(SeatHold.show_seat_id, SeatHold.expires_at)
            .join(ShowSeat, ShowSeat.id == SeatHold.show_seat_id)
            .where(ShowSeat.show_id == show_id, SeatHold.expires_at > now)
        )
        for seat_id, expires_at in hold_rows:
            held[seat_id] = max(expires_at, held.get(seat_id, expires_at))

    views = []
    for seat in seats:
        if seat.id in booked:
            availability = SeatAvailability.BOOKED
        elif seat.id in held:
            availability = SeatAvailability.HELD
        else:
            availability = SeatAvailability.AVAILABLE
        views.append(
            SeatView(
                id=seat.id,
                seat_label=seat.seat_label,
                tier=SeatTier(seat.tier),
                price=seat.price,
                availability=availability,
                held_until=held.get(seat.id) if availability == SeatAvailability.HELD else None,
            )
        )

    logger.debug("seat_availability_listed", show_id=show_id, seats=len(views), booked=len(booked))
    return views
