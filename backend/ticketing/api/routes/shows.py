"""
Show seat availability.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.db.session import get_db
from ticketing.schemas.show import SeatAvailabilityResponse, ShowSeatsResponse
from ticketing.services import show_service

router = APIRouter(prefix="/shows", tags=["Shows"])


@router.get("/{show_id}/seats", response_model=ShowSeatsResponse)
async def list_show_seats(show_id: str, db: AsyncSession = Depends(get_db)):
    """
    Seats of a show as AVAILABLE, HELD or BOOKED. Re-query this after a
    booking conflict.
    """
    show = await show_service.get_show(db, show_id)
    seats = await show_service.list_seat_availability(db, show_id)
    return ShowSeatsResponse(
        show_id=show.id,
        start_time=show.start_time,
        seats=[SeatAvailabilityResponse.model_validate(seat) for seat in seats],
    )
