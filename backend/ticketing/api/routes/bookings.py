"""
Booking and seat hold endpoints.

Static paths (/user/..., /hold-seats, /holds/...) are declared before
/{booking_id} so they are not captured by it.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.config import get_settings
from ticketing.db.session import get_db
from ticketing.schemas.booking import (
    BookingCancelResponse,
    BookingCreate,
    BookingDetail,
    BookingSummary,
    HoldCreate,
    HoldReleaseResponse,
    HoldResponse,
    UserAction,
)
from ticketing.services import booking_service, hold_service

router = APIRouter(prefix="/bookings", tags=["Bookings"])
settings = get_settings()


@router.post("", response_model=BookingSummary, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Create a PENDING booking for the given seats.

    Seat rows are locked for the duration of the check-and-insert, so of
    several concurrent requests for one seat exactly one succeeds; the rest
    get 400 "already booked". Repeating an idempotencyKey returns the
    original booking.
    """
    result = await booking_service.create_booking(
        db,
        booking_data.user_id,
        booking_data.show_id,
        booking_data.seat_ids,
        booking_data.idempotency_key,
    )
    return BookingSummary(
        booking_id=result.booking_id,
        show_id=result.show_id,
        seat_ids=result.seat_ids,
        status=result.status,
        expires_at=result.expires_at,
        total_amount=result.total_amount,
        message=result.message,
    )


@router.get("/user/{user_id}", response_model=list[BookingDetail])
async def list_user_bookings(user_id: str, db: AsyncSession = Depends(get_db)):
    """Get all bookings for a user, newest first."""
    bookings = await booking_service.get_user_bookings(db, user_id)
    return [BookingDetail.from_booking(booking) for booking in bookings]


@router.post("/hold-seats", response_model=HoldResponse)
async def hold_seats(hold_data: HoldCreate, db: AsyncSession = Depends(get_db)):
    """Hold seats while the user completes checkout. Replaces the user's previous hold."""
    result = await hold_service.hold_seats(db, hold_data.user_id, hold_data.show_id, hold_data.seat_ids)
    return HoldResponse(
        user_id=result.user_id,
        show_id=result.show_id,
        seat_ids=result.seat_ids,
        expires_at=result.expires_at,
        message=f"Seats held for {settings.SEAT_HOLD_MINUTES} minutes. Please complete booking.",
    )


@router.delete("/holds/{user_id}", response_model=HoldReleaseResponse)
async def release_holds(user_id: str, db: AsyncSession = Depends(get_db)):
    released = await hold_service.release_holds(db, user_id)
    return HoldReleaseResponse(released=released, message=f"Released {released} seat hold(s)")


@router.get("/{booking_id}", response_model=BookingDetail)
async def get_booking(booking_id: str, db: AsyncSession = Depends(get_db)):
    booking = await booking_service.get_booking(db, booking_id)
    return BookingDetail.from_booking(booking)


@router.patch("/{booking_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking(
    booking_id: str,
    body: UserAction,
    db: AsyncSession = Depends(get_db),
):
    """
    Cancel a PENDING or EXPIRED booking and release its seats.
    Confirmed bookings are rejected; use the refund endpoint.
    """
    result = await booking_service.cancel_booking(db, booking_id, body.user_id)
    return BookingCancelResponse(
        booking_id=result.booking_id,
        status=result.status,
        message=result.message,
    )
