"""SQLAlchemy models."""

from boxoffice.models.base import Base
from boxoffice.models.booking import (
    Booking,
    BookingItem,
    BookingItemStatus,
    BookingStatus,
    SeatClaim,
    Ticket,
    TicketStatus,
)
from boxoffice.models.catalog import Cinema, Room, Seat, SeatType, Showing
from boxoffice.models.payment import Payment, PaymentEvent, PaymentProvider, PaymentStatus
from boxoffice.models.price_rule import DayType, PriceRule

__all__ = [
    "Base",
    "Cinema",
    "Room",
    "Seat",
    "SeatType",
    "Showing",
    "PriceRule",
    "DayType",
    "Booking",
    "BookingItem",
    "BookingStatus",
    "BookingItemStatus",
    "SeatClaim",
    "Ticket",
    "TicketStatus",
    "Payment",
    "PaymentEvent",
    "PaymentProvider",
    "PaymentStatus",
]
