"""Seat and seat lock schemas."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from boxoffice.models.catalog import SeatType
from boxoffice.schemas.common import BaseSchema


class SeatState(str, Enum):
    """Seat state shown on a seat map."""

    AVAILABLE = "AVAILABLE"
    LOCKED = "LOCKED"
    BOOKED = "BOOKED"
    INACTIVE = "INACTIVE"


class SeatResponse(BaseSchema):
    """Schema for seat response."""

    seat_id: str
    room_id: str
    row_label: str
    seat_number: int
    label: str
    seat_type: SeatType
    is_active: bool


class SeatMapEntry(SeatResponse):
    """Seat with its current state for one showing."""

    state: SeatState
    locked_by_me: bool = False


class SeatMapResponse(BaseSchema):
    """Seat map of a showing."""

    showing_id: str
    seats: list[SeatMapEntry]


class SeatLockRequest(BaseSchema):
    """Schema for locking seats."""

    showing_id: str
    seat_ids: list[str] = Field(..., min_length=1, max_length=10)


class SeatLockExtendRequest(SeatLockRequest):
    """Schema for extending seat locks."""

    ttl_seconds: int = Field(default=600, ge=30, le=1800)


class SeatLockResponse(BaseSchema):
    """Seats affected by a lock call."""

    showing_id: str
    seat_ids: list[str]
    skipped_seat_ids: list[str] = []
    expires_at: datetime | None = None
    success: bool


class SeatUnlockResponse(BaseSchema):
    showing_id: str
    seat_ids: list[str]


class LockedSeatsResponse(BaseSchema):
    """Seats locked for a showing and the caller's own leases."""

    showing_id: str
    locked_seat_ids: list[str]
    my_seat_ids: list[str] = []
    my_expires_at: datetime | None = None
