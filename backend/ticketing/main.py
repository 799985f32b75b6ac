"""
Ticket Booking Engine - Main Application Entry Point

Seat reservation and booking lifecycle service demonstrating:
- Pessimistic seat locking: exactly one winner per seat under contention
- Idempotent booking creation and payment webhooks
- Time-boxed holds and PENDING bookings reclaimed by a background sweeper
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.config import get_settings
from ticketing.core.logging import setup_logging, get_logger
from ticketing.core.metrics import metrics_endpoint
from ticketing.api.errors import register_exception_handlers
from ticketing.api.router import api_router
from ticketing.api.middleware import RequestLoggingMiddleware
from ticketing.db.session import engine, get_db, get_session_factory
from ticketing.infrastructure.redis_client import get_redis, close_redis, get_redis_status
from ticketing.services.expiry_sweeper import ExpirySweeper

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    elif settings.REDIS_ENABLED:
        logger.warning("redis_unavailable", message="Running without Redis")

    sweeper = None
    if settings.SWEEPER_ENABLED:
        sweeper = ExpirySweeper(get_session_factory())
        sweeper.start()
    app.state.sweeper = sweeper

    yield

    # Cleanup
    if sweeper:
        await sweeper.stop()
    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Seat reservation and booking lifecycle API with pessimistic locking",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Routes
app.include_router(api_router)


async def check_database(db: AsyncSession) -> dict:
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        return {"status": "error", "error": str(e)}
    return {"status": "connected"}


@app.get("/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Health check endpoint for Docker and load balancers."""
    database = await check_database(db)
    return {
        "status": "healthy" if database["status"] == "connected" else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "database": database,
        "redis": await get_redis_status(),
    }


@app.get("/metrics", tags=["Health"])
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


def run() -> None:
    uvicorn.run("ticketing.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
