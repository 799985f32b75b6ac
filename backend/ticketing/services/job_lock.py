"""
Cross-instance job lease backed by the job_locks table.

Same contract as a Redis SET NX EX lock, but in the database that is already
the source of truth, so it works whether or not Redis is configured:

- acquire succeeds if no row exists, the row's lease has lapsed, or this
  holder already owns it (renewal)
- release only deletes a row this holder owns
"""

from datetime import timedelta

from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.logging import get_logger
from ticketing.db.base import utcnow
from ticketing.db.locking import transaction
from ticketing.models import JobLock

logger = get_logger(__name__)


async def acquire_job_lock(db: AsyncSession, name: str, holder: str, ttl_seconds: int) -> bool:
    now = utcnow()
    locked_until = now + timedelta(seconds=ttl_seconds)

    try:
        async with transaction(db):
            result = await db.execute(
                update(JobLock)
                .where(
                    JobLock.name == name,
                    or_(JobLock.locked_until < now, JobLock.holder == holder),
                )
                .values(holder=holder, locked_until=locked_until)
            )
            if result.rowcount:
                return True

            existing = await db.get(JobLock, name)
            if existing is not None:
                logger.debug("job_lock_busy", job=name, holder=existing.holder)
                return False

            db.add(JobLock(name=name, holder=holder, locked_until=locked_until))
            await db.flush()
    except IntegrityError:
        # Another instance inserted the row first
        logger.debug("job_lock_lost_race", job=name)
        return False

    return True


async def release_job_lock(db: AsyncSession, name: str, holder: str) -> bool:
    async with transaction(db):
        result = await db.execute(
            delete(JobLock).where(JobLock.name == name, JobLock.holder == holder)
        )
    return bool(result.rowcount)
