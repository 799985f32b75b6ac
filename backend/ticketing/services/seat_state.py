"""
Seat availability checks shared by the hold manager and the booking engine.

The conflict checks are only meaningful when run after the seat rows are
locked (see ticketing.db.locking); run before, they are advisory.
"""

from collections import Counter
from datetime import datetime
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.exceptions import ConflictError, ValidationError
from ticketing.models import Booking, BookingSeat, SeatHold, ShowSeat
from ticketing.models.enums import ACTIVE_BOOKING_STATUSES


def normalize_seat_ids(seat_ids: Sequence[str]) -> list[str]:
    if not seat_ids:
        raise ValidationError("At least one seat must be selected")
    duplicates = sorted(seat_id for seat_id, count in Counter(seat_ids).items() if count > 1)
    if duplicates:
        raise ValidationError(f"Duplicate seat ids in request: {', '.join(duplicates)}")
    return list(seat_ids)


async def load_show_seats(db: AsyncSession, show_id: str, seat_ids: Sequence[str]) -> list[ShowSeat]:
    """
    Load the requested seats, all of which must belong to ``show_id``.
    The error names every id that is missing for this show.
    """
    result = await db.execute(
        select(ShowSeat).where(ShowSeat.id.in_(seat_ids), ShowSeat.show_id == show_id)
    )
    seats = list(result.scalars().all())

    if len(seats) != len(seat_ids):
        found = {seat.id for seat in seats}
        missing = [seat_id for seat_id in seat_ids if seat_id not in found]
        raise ValidationError(
            f"Invalid or unavailable seats: {', '.join(missing)}. "
            f"Expected {len(seat_ids)} seats, found {len(seats)}."
        )
    return seats


async def find_booked_seat_ids(db: AsyncSession, seat_ids: Sequence[str]) -> list[str]:
    """Seats referenced by a BookingSeat whose booking is PENDING or CONFIRMED."""
    result = await db.execute(
        select(BookingSeat.show_seat_id)
        .join(Booking, Booking.id == BookingSeat.booking_id)
        .where(
            BookingSeat.show_seat_id.in_(seat_ids),
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .distinct()
    )
    return sorted(result.scalars().all())


async def find_seats_held_by_others(
    db: AsyncSession,
    seat_ids: Sequence[str],
    user_id: str,
    now: datetime,
) -> list[str]:
    """Seats with an unexpired hold owned by someone other than ``user_id``."""
    result = await db.execute(
        select(SeatHold.show_seat_id)
        .where(
            SeatHold.show_seat_id.in_(seat_ids),
            SeatHold.user_id != user_id,
            SeatHold.expires_at > now,
        )
        .distinct()
    )
    return sorted(result.scalars().all())


async def ensure_seats_free(
    db: AsyncSession,
    seat_ids: Sequence[str],
    user_id: str,
    now: datetime,
) -> None:
    booked = await find_booked_seat_ids(db, seat_ids)
    if booked:
        raise ConflictError(f"One or more seats are already booked: {', '.join(booked)}")

    held = await find_seats_held_by_others(db, seat_ids, user_id, now)
    if held:
        raise ConflictError(
            "One or more seats are temporarily held by another user: "
            f"{', '.join(held)}. Please try again in a few minutes."
        )
