"""Showing schemas."""

from datetime import datetime

from boxoffice.schemas.common import BaseSchema


class CinemaSummary(BaseSchema):
    cinema_id: str
    name: str
    city: str | None = None


class ShowingResponse(BaseSchema):
    """Schema for showing response."""

    showing_id: str
    room_id: str
    room_name: str
    cinema: CinemaSummary
    movie_title: str
    start_at: datetime
    end_at: datetime
    base_price: int
    total_seats: int
    available_seats: int
