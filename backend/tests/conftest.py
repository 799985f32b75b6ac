"""
Pytest fixtures for test database, client, gateway and catalog data.

Each test gets a fresh database: a SQLite file under tmp_path by default,
or the PostgreSQL database named by TEST_DATABASE_URL. Every request and
every service call gets its own session, like production, so concurrent
requests really contend for the same rows.
"""

import os

# Configure before the application reads its settings
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SWEEPER_ENABLED", "false")

import time
from datetime import timedelta
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ticketing.main import app
from ticketing.db.base import Base, new_id, utcnow
from ticketing.db.session import create_engine, create_session_factory, get_db
from ticketing.models import Show, ShowSeat
from ticketing.models.enums import SeatTier
from ticketing.services.interfaces import InMemorySessionStore
from ticketing.services.payment_gateway import FakePaymentGateway, encode_payload, get_payment_gateway

TEST_WEBHOOK_SECRET = "whsec_test_secret"
SEAT_PRICE = 250


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables, yield engine, then drop tables for isolation."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    test_engine = create_engine(url)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakePaymentGateway:
    """Gateway with its own session store and a deterministic success rate."""
    return FakePaymentGateway(
        store=InMemorySessionStore(),
        webhook_secret=TEST_WEBHOOK_SECRET,
        success_rate=100,
        base_url="http://test",
    )


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, gateway) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB and gateway dependencies."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_show(session_factory):
    """Factory: a show starting ``starts_in`` from now with ``seat_count`` seats."""

    async def _make_show(
        starts_in: timedelta = timedelta(days=3),
        seat_count: int = 5,
        price: int = SEAT_PRICE,
        tier: SeatTier = SeatTier.REGULAR,
    ) -> Show:
        async with session_factory() as session:
            async with session.begin():
                show = Show(movie_id=new_id(), screen_id=new_id(), start_time=utcnow() + starts_in)
                session.add(show)
                await session.flush()
                seats = [
                    ShowSeat(show_id=show.id, seat_label=f"A{i + 1}", tier=tier, price=price)
                    for i in range(seat_count)
                ]
                session.add_all(seats)
                await session.flush()
        show.seat_ids = [seat.id for seat in seats]
        return show

    return _make_show


@pytest_asyncio.fixture
async def test_show(make_show) -> Show:
    """A show three days out with five seats at SEAT_PRICE."""
    return await make_show()


@pytest.fixture
def create_booking(client: AsyncClient):
    """POST /bookings and return the raw response."""

    async def _create_booking(
        show_id: str,
        seat_ids: list[str],
        user_id: str = "user-1",
        idempotency_key: Optional[str] = None,
    ):
        payload = {"userId": user_id, "showId": show_id, "seatIds": seat_ids}
        if idempotency_key:
            payload["idempotencyKey"] = idempotency_key
        return await client.post("/api/v1/bookings", json=payload)

    return _create_booking


@pytest.fixture
def initiate_payment(client: AsyncClient):
    async def _initiate_payment(booking_id: str, user_id: str = "user-1") -> dict:
        response = await client.post(
            "/api/v1/payments/initiate",
            json={"bookingId": booking_id, "userId": user_id},
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _initiate_payment


@pytest.fixture
def send_webhook(client: AsyncClient, gateway: FakePaymentGateway):
    """Sign and POST a webhook event the way the gateway would."""

    async def _send_webhook(
        event_type: str,
        session_id: str,
        booking_id: str = "",
        amount: int = 0,
        timestamp: Optional[int] = None,
        signature: Optional[str] = None,
    ):
        payload = encode_payload({
            "eventType": event_type,
            "sessionId": session_id,
            "bookingId": booking_id,
            "amount": amount,
            "timestamp": int(time.time() * 1000),
            "gatewayRef": "gw_test",
        })
        if signature is None:
            signature = gateway.generate_webhook_signature(payload, timestamp)
        return await client.post(
            "/api/v1/payments/webhook",
            content=payload,
            headers={"Content-Type": "application/json", "x-payment-signature": signature},
        )

    return _send_webhook


@pytest.fixture
def confirmed_booking(create_booking, initiate_payment, client: AsyncClient):
    """Factory: book ``seat_ids``, pay, and return the booking id."""

    async def _confirmed_booking(show_id: str, seat_ids: list[str], user_id: str = "user-1") -> str:
        response = await create_booking(show_id, seat_ids, user_id=user_id)
        assert response.status_code == 201, response.text
        booking_id = response.json()["bookingId"]

        session = await initiate_payment(booking_id, user_id)
        paid = await client.post(
            f"/api/v1/payments/simulate/{session['sessionId']}",
            json={"result": "success"},
        )
        assert paid.status_code == 200, paid.text
        return booking_id

    return _confirmed_booking
