"""
Booking engine with pessimistic seat locking.

CONCURRENCY STRATEGY: Lock, Re-check, Write
===========================================

Problem:
  Two users try to book the same seat simultaneously.
  Both read "no active BookingSeat for seat 7", both insert one.
  Result: Double booking.

Solution:
  Booking creation runs as one transaction:

  1. Idempotency short-circuit on payment_ref
  2. Validate the show (exists, not started) and the seat ids
  3. SELECT ... FOR UPDATE on exactly the requested show_seats rows,
     sorted by id so overlapping requests cannot deadlock
  4. Re-check under the lock: active BookingSeat? foreign unexpired hold?
  5. Insert Booking + BookingSeats, delete holds on those seats, commit

  A second transaction naming any of the same seats blocks at step 3 until
  the first commits or rolls back, then sees the new BookingSeat at step 4
  and fails with ConflictError. Exactly one contender wins each seat.

  Any error after step 1 rolls the whole transaction back; no partial
  Booking/BookingSeat state is ever visible.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ticketing.core.config import get_settings
from ticketing.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ticketing.core.logging import get_logger
from ticketing.core.metrics import booking_latency, record_booking_attempt
from ticketing.db.base import utcnow
from ticketing.db.locking import lock_rows, transaction, with_locked_rows
from ticketing.models import Booking, BookingSeat, SeatHold, Show, ShowSeat
from ticketing.models.enums import BookingStatus
from ticketing.services.lifecycle import transition_booking
from ticketing.services.seat_state import ensure_seats_free, load_show_seats, normalize_seat_ids

logger = get_logger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class BookingResult:
    booking_id: str
    show_id: str
    seat_ids: list[str]
    status: BookingStatus
    expires_at: Optional[datetime]
    total_amount: int
    replayed: bool = False
    message: str = field(default="")


@dataclass(frozen=True)
class CancelResult:
    booking_id: str
    status: BookingStatus
    message: str


async def create_booking(
    db: AsyncSession,
    user_id: str,
    show_id: str,
    seat_ids: Sequence[str],
    idempotency_key: Optional[str] = None,
) -> BookingResult:
    """
    Create a PENDING booking for ``seat_ids`` that expires in
    BOOKING_EXPIRY_MINUTES unless paid.

    A repeated ``idempotency_key`` returns the booking created by the first
    call, unchanged and without re-validation.
    """
    start = time.perf_counter()
    try:
        result = await _create_booking(db, user_id, show_id, seat_ids, idempotency_key)
    except IntegrityError:
        # A concurrent request with the same idempotency key committed first
        if not idempotency_key:
            record_booking_attempt("error")
            raise
        async with transaction(db):
            existing = await _find_by_payment_ref(db, idempotency_key)
            if existing is None:
                record_booking_attempt("error")
                raise
            result = await _replay(db, existing)
    except ConflictError as e:
        record_booking_attempt("conflict")
        logger.info("booking_conflict", user_id=user_id, show_id=show_id, reason=e.message)
        raise
    except (ValidationError, NotFoundError, InvalidStateError) as e:
        record_booking_attempt("invalid")
        logger.info("booking_rejected", user_id=user_id, show_id=show_id, reason=e.message)
        raise
    finally:
        booking_latency.observe(time.perf_counter() - start)

    record_booking_attempt("replay" if result.replayed else "success")
    return result


async def _create_booking(
    db: AsyncSession,
    user_id: str,
    show_id: str,
    seat_ids: Sequence[str],
    idempotency_key: Optional[str],
) -> BookingResult:
    async with transaction(db):
        if idempotency_key:
            existing = await _find_by_payment_ref(db, idempotency_key)
            if existing is not None:
                return await _replay(db, existing)

        seat_ids = normalize_seat_ids(seat_ids)
        now = utcnow()
        show = await db.get(Show, show_id)
        if show is None:
            raise NotFoundError(f"Show not found: {show_id}")
        if now > show.start_time:
            raise InvalidStateError("Cannot book a show that has already started")

        await load_show_seats(db, show_id, seat_ids)

        async def _reserve(locked_seats: Sequence[ShowSeat]) -> BookingResult:
            if len(locked_seats) != len(seat_ids):
                raise ValidationError("One or more seats disappeared while locking")

            if idempotency_key:
                # Another request with this key may have committed while we waited
                existing = await _find_by_payment_ref(db, idempotency_key)
                if existing is not None:
                    return await _replay(db, existing)

            await ensure_seats_free(db, seat_ids, user_id, now)

            total_amount = sum(seat.price for seat in locked_seats)
            expires_at = now + timedelta(minutes=settings.BOOKING_EXPIRY_MINUTES)
            booking = Booking(
                user_id=user_id,
                show_id=show_id,
                status=BookingStatus.PENDING,
                payment_ref=idempotency_key or str(uuid.uuid4()),
                total_amount=total_amount,
                expires_at=expires_at,
            )
            db.add(booking)
            await db.flush()

            db.add_all(BookingSeat(booking_id=booking.id, show_seat_id=seat_id) for seat_id in seat_ids)
            # The booking supersedes any hold on these seats, including the caller's own
            await db.execute(delete(SeatHold).where(SeatHold.show_seat_id.in_(seat_ids)))
            await db.flush()

            logger.info(
                "booking_created",
                booking_id=booking.id,
                user_id=user_id,
                show_id=show_id,
                seats=len(seat_ids),
                total_amount=total_amount,
                expires_at=expires_at.isoformat(),
            )
            return BookingResult(
                booking_id=booking.id,
                show_id=show_id,
                seat_ids=list(seat_ids),
                status=BookingStatus.PENDING,
                expires_at=expires_at,
                total_amount=total_amount,
                message=(
                    f"Booking created. Please complete payment within "
                    f"{settings.BOOKING_EXPIRY_MINUTES} minutes."
                ),
            )

        return await with_locked_rows(db, ShowSeat, seat_ids, _reserve, ShowSeat.show_id == show_id)


async def _find_by_payment_ref(db: AsyncSession, payment_ref: str) -> Optional[Booking]:
    result = await db.execute(select(Booking).where(Booking.payment_ref == payment_ref))
    return result.scalar_one_or_none()


async def _replay(db: AsyncSession, booking: Booking) -> BookingResult:
    result = await db.execute(
        select(BookingSeat.show_seat_id)
        .where(BookingSeat.booking_id == booking.id)
        .order_by(BookingSeat.show_seat_id)
    )
    logger.info("booking_idempotent_replay", booking_id=booking.id, payment_ref=booking.payment_ref)
    return BookingResult(
        booking_id=booking.id,
        show_id=booking.show_id,
        seat_ids=list(result.scalars().all()),
        status=BookingStatus(booking.status),
        expires_at=booking.expires_at,
        total_amount=booking.total_amount,
        replayed=True,
        message="Existing booking returned (idempotent)",
    )


async def release_booking_seats(db: AsyncSession, booking_id: str) -> int:
    """Delete the booking's seat rows, making the seats bookable again."""
    result = await db.execute(delete(BookingSeat).where(BookingSeat.booking_id == booking_id))
    return result.rowcount or 0


async def lock_booking(db: AsyncSession, booking_id: str) -> Booking:
    """Lock one booking row for the rest of the transaction."""
    rows = await lock_rows(db, Booking, [booking_id])
    if not rows:
        raise NotFoundError(f"Booking not found: {booking_id}")
    return rows[0]


async def cancel_booking(db: AsyncSession, booking_id: str, user_id: str) -> CancelResult:
    """
    Cancel a PENDING or EXPIRED booking and release its seats.
    CONFIRMED bookings must go through the refund flow instead.
    """
    async with transaction(db):
        booking = await lock_booking(db, booking_id)

        if booking.user_id != user_id:
            raise ForbiddenError("You can only cancel your own bookings")

        status = BookingStatus(booking.status)
        if status == BookingStatus.CANCELLED:
            return CancelResult(
                booking_id=booking_id,
                status=status,
                message="Booking is already cancelled",
            )
        if status == BookingStatus.CONFIRMED:
            raise InvalidStateError(
                "Confirmed bookings cannot be directly cancelled. Please use the refund endpoint."
            )
        if status not in (BookingStatus.PENDING, BookingStatus.EXPIRED):
            raise InvalidStateError(f"Cannot cancel booking with status: {status.value}")

        released = await release_booking_seats(db, booking_id)
        transition_booking(booking, BookingStatus.CANCELLED)

    logger.info("booking_cancelled", booking_id=booking_id, user_id=user_id, seats_released=released)
    return CancelResult(
        booking_id=booking_id,
        status=BookingStatus.CANCELLED,
        message="Booking cancelled successfully. Seats have been released.",
    )


def _booking_detail_options():
    return (
        selectinload(Booking.seats).selectinload(BookingSeat.show_seat),
        selectinload(Booking.show),
        selectinload(Booking.payments),
    )


async def get_booking(db: AsyncSession, booking_id: str) -> Booking:
    """Booking with seats, show and payments loaded."""
    async with transaction(db):
        result = await db.execute(
            select(Booking).where(Booking.id == booking_id).options(*_booking_detail_options())
        )
        booking = result.scalar_one_or_none()

    if booking is None:
        raise NotFoundError(f"Booking not found: {booking_id}")
    return booking


async def get_user_bookings(db: AsyncSession, user_id: str) -> list[Booking]:
    """Get all bookings for a user, newest first."""
    async with transaction(db):
        result = await db.execute(
            select(Booking)
            .where(Booking.user_id == user_id)
            .options(*_booking_detail_options())
            .order_by(Booking.created_at.desc())
        )
        return list(result.scalars().all())
