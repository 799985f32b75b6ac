"""
Seat hold manager.

A hold is a short, non-binding claim on a set of seats while the user
finishes checkout. It blocks other users from holding or booking those seats
until it expires, is released, or is consumed by a booking. A user has at
most one held seat set at a time: holding again replaces the previous set.

Holds are never eagerly deleted on expiry; every reader filters on
expires_at > now, and the sweeper purges stale rows later.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.config import get_settings
from ticketing.core.exceptions import ConflictError, ValidationError
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_hold
from ticketing.db.base import utcnow
from ticketing.db.locking import transaction, with_locked_rows
from ticketing.models import SeatHold, ShowSeat
from ticketing.services.seat_state import ensure_seats_free, load_show_seats, normalize_seat_ids

logger = get_logger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class HoldResult:
    user_id: str
    show_id: str
    seat_ids: list[str]
    expires_at: datetime


async def hold_seats(
    db: AsyncSession,
    user_id: str,
    show_id: str,
    seat_ids: Sequence[str],
) -> HoldResult:
    """
    Hold seats for ``user_id`` for SEAT_HOLD_MINUTES.

    Raises ValidationError if any seat is not part of the show, and
    ConflictError if any seat is booked or held by another user. Checks and
    writes run under exclusive seat locks in one transaction.
    """
    seat_ids = normalize_seat_ids(seat_ids)
    now = utcnow()
    expires_at = now + timedelta(minutes=settings.SEAT_HOLD_MINUTES)

    async def _replace_holds(locked_seats: Sequence[ShowSeat]) -> None:
        await ensure_seats_free(db, seat_ids, user_id, now)

        # One active seat set per user
        await db.execute(delete(SeatHold).where(SeatHold.user_id == user_id))
        db.add_all(
            SeatHold(show_seat_id=seat_id, user_id=user_id, expires_at=expires_at)
            for seat_id in seat_ids
        )
        await db.flush()

    try:
        async with transaction(db):
            await load_show_seats(db, show_id, seat_ids)
            await with_locked_rows(
                db, ShowSeat, seat_ids, _replace_holds, ShowSeat.show_id == show_id
            )
    except ValidationError:
        record_hold("invalid")
        raise
    except ConflictError as e:
        record_hold("conflict")
        logger.info("hold_conflict", user_id=user_id, show_id=show_id, reason=e.message)
        raise

    record_hold("held")
    logger.info(
        "seats_held",
        user_id=user_id,
        show_id=show_id,
        seats=len(seat_ids),
        expires_at=expires_at.isoformat(),
    )
    return HoldResult(user_id=user_id, show_id=show_id, seat_ids=seat_ids, expires_at=expires_at)


async def release_holds(db: AsyncSession, user_id: str) -> int:
    """Delete every hold owned by ``user_id``. Releasing nothing is fine."""
    async with transaction(db):
        result = await db.execute(delete(SeatHold).where(SeatHold.user_id == user_id))
    released = result.rowcount or 0
    logger.info("holds_released", user_id=user_id, released=released)
    return released
