"""Booking schemas."""

from datetime import datetime

from pydantic import Field, field_validator

from boxoffice.drafts import CustomerContact
from boxoffice.models.booking import BookingItemStatus, BookingStatus, TicketStatus
from boxoffice.schemas.common import BaseSchema


class BookingCreate(BaseSchema):
    """Schema for creating a booking from selected seats."""

    showing_id: str
    seat_ids: list[str] = Field(..., min_length=1, max_length=10)
    customer: CustomerContact | None = None


class BookingItemResponse(BaseSchema):
    item_id: str
    seat_id: str
    position: int
    unit_price: int
    price_category: str | None
    status: BookingItemStatus


class TicketResponse(BaseSchema):
    ticket_id: str
    item_id: str
    seat_id: str
    code: str
    status: TicketStatus
    issued_at: datetime


class BookingResponse(BaseSchema):
    """Schema for booking response."""

    booking_id: str
    code: str
    user_id: str | None
    showing_id: str
    status: BookingStatus
    total_amount: int
    currency: str
    hold_expires_at: datetime
    created_at: datetime
    confirmed_at: datetime | None = None
    items: list[BookingItemResponse] = []


class BookingDetailResponse(BookingResponse):
    """Booking with tickets and contact snapshot."""

    customer_contact: CustomerContact | None = None
    tickets: list[TicketResponse] = []

    @field_validator("customer_contact", mode="before")
    @classmethod
    def parse_contact(cls, value):
        if isinstance(value, str):
            return CustomerContact.model_validate_json(value)
        return value
