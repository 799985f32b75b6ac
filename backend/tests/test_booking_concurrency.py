"""
Concurrency tests: many bookers, one seat.

Every contender runs in its own session/transaction, exactly as concurrent
requests would. Of N simultaneous bookings for the same seat exactly one
may succeed; the rest must fail with a conflict naming the seat.
"""

import asyncio

import pytest
from sqlalchemy import select

from ticketing.core.exceptions import ConflictError
from ticketing.models import Booking, BookingSeat
from ticketing.models.enums import ACTIVE_BOOKING_STATUSES
from ticketing.services.booking_service import create_booking


async def _active_owners(session_factory, seat_id: str) -> list[str]:
    async with session_factory() as session:
        async with session.begin():
            result = await session.execute(
                select(BookingSeat.booking_id)
                .join(Booking, Booking.id == BookingSeat.booking_id)
                .where(
                    BookingSeat.show_seat_id == seat_id,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                )
            )
            return list(result.scalars().all())


@pytest.mark.asyncio
async def test_ten_concurrent_requests_one_winner(create_booking, test_show, session_factory):
    """10 users race for one seat over HTTP: one 201, nine 400s."""
    seat_id = test_show.seat_ids[0]

    responses = await asyncio.gather(*[
        create_booking(test_show.id, [seat_id], user_id=f"user-{i}")
        for i in range(10)
    ])

    statuses = [response.status_code for response in responses]
    assert statuses.count(201) == 1
    assert statuses.count(400) == 9
    for response in responses:
        if response.status_code == 400:
            assert "already booked" in response.json()["detail"]

    owners = await _active_owners(session_factory, seat_id)
    assert len(owners) == 1


@pytest.mark.asyncio
async def test_fifty_concurrent_bookers_one_winner(test_show, session_factory):
    """50 contenders at the service layer: exactly one booking commits."""
    seat_id = test_show.seat_ids[0]

    async def attempt(i: int):
        async with session_factory() as session:
            return await create_booking(session, f"user-{i}", test_show.id, [seat_id])

    results = await asyncio.gather(*[attempt(i) for i in range(50)], return_exceptions=True)

    winners = [result for result in results if not isinstance(result, Exception)]
    conflicts = [result for result in results if isinstance(result, ConflictError)]
    assert len(winners) == 1
    assert len(conflicts) == 49
    assert all("already booked" in conflict.message for conflict in conflicts)

    owners = await _active_owners(session_factory, seat_id)
    assert owners == [winners[0].booking_id]


@pytest.mark.asyncio
async def test_overlapping_seat_sets(test_show, session_factory):
    """Requests sharing one seat in different orders: one wins, no deadlock."""
    a, b, c = test_show.seat_ids[:3]

    async def attempt(user_id: str, seats: list[str]):
        async with session_factory() as session:
            return await create_booking(session, user_id, test_show.id, seats)

    results = await asyncio.gather(
        attempt("alice", [a, b]),
        attempt("bob", [c, b]),
        attempt("carol", [b, a]),
        return_exceptions=True,
    )

    winners = [result for result in results if not isinstance(result, Exception)]
    assert len(winners) == 1
    assert all(isinstance(result, ConflictError) for result in results if isinstance(result, Exception))
    assert len(await _active_owners(session_factory, b)) == 1


@pytest.mark.asyncio
async def test_disjoint_seats_all_succeed(test_show, session_factory):
    """Concurrent bookings for different seats do not conflict."""

    async def attempt(i: int, seat_id: str):
        async with session_factory() as session:
            return await create_booking(session, f"user-{i}", test_show.id, [seat_id])

    results = await asyncio.gather(*[
        attempt(i, seat_id) for i, seat_id in enumerate(test_show.seat_ids)
    ])

    assert len({result.booking_id for result in results}) == len(test_show.seat_ids)


@pytest.mark.asyncio
async def test_concurrent_same_idempotency_key(test_show, session_factory):
    """Retries racing with one idempotency key resolve to a single booking."""
    seat_ids = test_show.seat_ids[:2]

    async def attempt():
        async with session_factory() as session:
            return await create_booking(session, "alice", test_show.id, seat_ids, "retry-key")

    results = await asyncio.gather(*[attempt() for _ in range(5)])

    assert len({result.booking_id for result in results}) == 1
    assert sum(1 for result in results if not result.replayed) == 1
