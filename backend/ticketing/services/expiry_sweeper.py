"""
Expiry sweeper: reclaims seats from abandoned bookings and stale holds.

Three periodic jobs run inside the API process:

  expire_pending_bookings   every SWEEP_INTERVAL_SECONDS (1 min)
  purge_expired_holds       every HOLD_CLEANUP_INTERVAL_SECONDS (5 min)
  prune_stale_booking_seats every PRUNE_INTERVAL_SECONDS (daily)

EXCLUSIVITY
===========
- In-process: one asyncio.Lock per job. A tick that finds the previous run
  still active is skipped and logged, never queued.
- Cross-instance: a lease row in job_locks. Only the instance holding an
  unexpired lease runs the job; the others skip.

PARTIAL FAILURE
===============
Each booking is expired in its own transaction with the booking row locked
and its state re-checked, so a booking confirmed or extended after the
candidate query is left alone. One booking failing is logged and the batch
moves on.
"""

import asyncio
import os
import socket
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.core.config import get_settings
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_sweeper_items, record_sweeper_run
from ticketing.db.base import utcnow
from ticketing.db.locking import transaction
from ticketing.models import Booking, BookingSeat, SeatHold
from ticketing.models.enums import BookingStatus
from ticketing.services.booking_service import lock_booking, release_booking_seats
from ticketing.services.job_lock import acquire_job_lock, release_job_lock
from ticketing.services.lifecycle import transition_booking

logger = get_logger(__name__)
settings = get_settings()

EXPIRE_BOOKINGS = "expire_pending_bookings"
PURGE_HOLDS = "purge_expired_holds"
PRUNE_BOOKING_SEATS = "prune_stale_booking_seats"


@dataclass
class ExpiryReport:
    found: int = 0
    expired: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def default_instance_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class ExpirySweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        instance_id: Optional[str] = None,
        lease_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.instance_id = instance_id or default_instance_id()
        self.lease_seconds = lease_seconds or settings.SWEEPER_LEASE_SECONDS
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._tasks: list[asyncio.Task] = []

    async def run_job(self, name: str, job: Callable[[], Awaitable]):
        """
        Run ``job`` unless it is already running here or leased elsewhere.
        Returns the job's result, or None when skipped or failed.
        """
        lock = self._locks[name]
        if lock.locked():
            logger.warning("sweep_skipped", job=name, reason="already_running")
            record_sweeper_run(name, "skipped")
            return None

        async with lock:
            try:
                async with self.session_factory() as db:
                    leased = await acquire_job_lock(db, name, self.instance_id, self.lease_seconds)
            except Exception:
                logger.exception("sweep_failed", job=name, stage="acquire_lease")
                record_sweeper_run(name, "failed")
                return None
            if not leased:
                logger.info("sweep_skipped", job=name, reason="leased_elsewhere")
                record_sweeper_run(name, "skipped")
                return None

            try:
                result = await job()
            except Exception:
                logger.exception("sweep_failed", job=name)
                record_sweeper_run(name, "failed")
                return None
            finally:
                await self._release_lease(name)

        record_sweeper_run(name, "completed")
        return result

    async def _release_lease(self, name: str) -> None:
        # An unreleased lease lapses after lease_seconds
        try:
            async with self.session_factory() as db:
                await release_job_lock(db, name, self.instance_id)
        except Exception:
            logger.exception("lease_release_failed", job=name)

    async def expire_pending_bookings(self) -> ExpiryReport:
        """Expire every PENDING booking whose expires_at has passed."""
        now = utcnow()
        async with self.session_factory() as db:
            async with transaction(db):
                result = await db.execute(
                    select(Booking.id)
                    .where(Booking.status == BookingStatus.PENDING, Booking.expires_at < now)
                    .order_by(Booking.expires_at)
                )
                candidates = list(result.scalars().all())

        report = ExpiryReport(found=len(candidates))
        if not candidates:
            logger.debug("no_expired_bookings")
            return report

        logger.info("expired_bookings_found", count=len(candidates))
        for booking_id in candidates:
            try:
                expired = await self._expire_booking(booking_id)
            except Exception as e:
                logger.error("booking_expiry_failed", booking_id=booking_id, error=str(e))
                report.failed.append(booking_id)
                continue
            if expired:
                report.expired.append(booking_id)
            else:
                report.skipped.append(booking_id)

        record_sweeper_items(EXPIRE_BOOKINGS, "expired", len(report.expired))
        record_sweeper_items(EXPIRE_BOOKINGS, "failed", len(report.failed))
        logger.info(
            "expired_bookings_processed",
            expired=len(report.expired),
            skipped=len(report.skipped),
            failed=len(report.failed),
        )
        return report

    async def _expire_booking(self, booking_id: str) -> bool:
        async with self.session_factory() as db:
            async with transaction(db):
                booking = await lock_booking(db, booking_id)
                now = utcnow()
                # Paid or extended since the candidate query
                if BookingStatus(booking.status) != BookingStatus.PENDING:
                    return False
                if booking.expires_at is None or booking.expires_at >= now:
                    return False

                released = await release_booking_seats(db, booking_id)
                transition_booking(booking, BookingStatus.EXPIRED)
                await db.execute(
                    delete(SeatHold).where(SeatHold.user_id == booking.user_id, SeatHold.expires_at < now)
                )

        logger.info("booking_expired", booking_id=booking_id, seats_released=released)
        return True

    async def purge_expired_holds(self) -> int:
        """Delete every lapsed hold, whoever owns it."""
        async with self.session_factory() as db:
            async with transaction(db):
                result = await db.execute(delete(SeatHold).where(SeatHold.expires_at < utcnow()))
        purged = result.rowcount or 0
        if purged:
            logger.info("expired_holds_purged", count=purged)
        record_sweeper_items(PURGE_HOLDS, "deleted", purged)
        return purged

    async def prune_stale_booking_seats(self) -> int:
        """
        Drop seat rows still attached to EXPIRED/CANCELLED bookings untouched
        for PRUNE_RETENTION_DAYS. The bookings themselves stay for history.
        """
        cutoff = utcnow() - timedelta(days=settings.PRUNE_RETENTION_DAYS)
        stale_bookings = select(Booking.id).where(
            Booking.status.in_((BookingStatus.EXPIRED, BookingStatus.CANCELLED)),
            Booking.updated_at < cutoff,
        )
        async with self.session_factory() as db:
            async with transaction(db):
                result = await db.execute(
                    delete(BookingSeat).where(BookingSeat.booking_id.in_(stale_bookings))
                )
        pruned = result.rowcount or 0
        if pruned:
            logger.info("stale_booking_seats_pruned", count=pruned, cutoff=cutoff.isoformat())
        record_sweeper_items(PRUNE_BOOKING_SEATS, "deleted", pruned)
        return pruned

    def start(self) -> None:
        if self._tasks:
            return
        schedule = (
            (EXPIRE_BOOKINGS, settings.SWEEP_INTERVAL_SECONDS, self.expire_pending_bookings),
            (PURGE_HOLDS, settings.HOLD_CLEANUP_INTERVAL_SECONDS, self.purge_expired_holds),
            (PRUNE_BOOKING_SEATS, settings.PRUNE_INTERVAL_SECONDS, self.prune_stale_booking_seats),
        )
        self._tasks = [
            asyncio.create_task(self._every(interval, name, job), name=f"sweeper:{name}")
            for name, interval, job in schedule
        ]
        logger.info("sweeper_started", instance_id=self.instance_id)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("sweeper_stopped", instance_id=self.instance_id)

    async def _every(self, interval: int, name: str, job: Callable[[], Awaitable]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.run_job(name, job)
            except Exception:
                # The loop outlives any single tick
                logger.exception("sweep_tick_failed", job=name)
