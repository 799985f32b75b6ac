"""
Pessimistic row locking.

Every call site that takes exclusive locks on seat (or booking) rows goes
through here, so the lock order is the same everywhere: ids de-duplicated
and sorted ascending. Two transactions asking for overlapping but different
seat sets therefore queue on the first shared id instead of deadlocking.
"""

from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")
R = TypeVar("R")


@asynccontextmanager
async def transaction(db: AsyncSession):
    """
    Join the session's active transaction, or open one that commits on
    success and rolls back on any exception.
    """
    if db.in_transaction():
        yield db
    else:
        async with db.begin():
            yield db


async def lock_rows(
    db: AsyncSession,
    model: type[T],
    ids: Iterable[Any],
    *criteria,
) -> list[T]:
    """
    SELECT ... WHERE id IN (...) ORDER BY id FOR UPDATE, inside the
    caller's transaction. Blocks while another transaction holds any of the
    rows. Rows filtered out by ``criteria`` are not locked or returned.
    """
    ordered_ids = sorted(set(ids))
    if not ordered_ids:
        return []
    stmt = (
        select(model)
        .where(model.id.in_(ordered_ids), *criteria)
        .order_by(model.id)
        .with_for_update()
        # refresh attributes already loaded in the identity map
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def with_locked_rows(
    db: AsyncSession,
    model: type[T],
    ids: Iterable[Any],
    fn: Callable[[Sequence[T]], Awaitable[R]],
    *criteria,
) -> R:
    """
    Lock the rows, run ``fn(rows)`` and commit, all as one atomic unit.

    If ``db`` already has a transaction open the locks and ``fn`` join it
    and the caller's transaction decides commit or rollback.
    """
    async with transaction(db):
        rows = await lock_rows(db, model, ids, *criteria)
        return await fn(rows)
