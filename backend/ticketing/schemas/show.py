"""
Pydantic schemas for show seat availability.
"""

from datetime import datetime
from typing import Optional

from ticketing.models.enums import SeatAvailability, SeatTier
from ticketing.schemas.common import CamelModel


class SeatAvailabilityResponse(CamelModel):
    id: str
    seat_label: str
    tier: SeatTier
    price: int
    availability: SeatAvailability
    held_until: Optional[datetime] = None


class ShowSeatsResponse(CamelModel):
    show_id: str
    start_time: datetime
    seats: list[SeatAvailabilityResponse]
