"""
Async engine and session factory.

PostgreSQL (asyncpg) is the deployment target: row locks come from
SELECT ... FOR UPDATE. SQLite (aiosqlite) is supported for local runs and
tests; it has no row locks, so every transaction is opened with
BEGIN IMMEDIATE, taking the database write lock up front. Either way a
transaction that locks seats and re-checks them cannot interleave with
another one touching the same seats.
"""

from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ticketing.core.config import get_settings

settings = get_settings()

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def _install_sqlite_immediate_transactions(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        # stop the driver from emitting its own deferred BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine configured for the lock-then-recheck model."""
    if make_url(url).get_backend_name() == "sqlite":
        engine = create_async_engine(
            url,
            connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
            **kwargs,
        )
        _install_sqlite_immediate_transactions(engine)
        return engine

    return create_async_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        **kwargs,
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = create_engine(settings.DATABASE_URL, echo=settings.DEBUG)
AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session. Services open and commit their own
    transactions; whatever is left open at the end is rolled back.
    """
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal
