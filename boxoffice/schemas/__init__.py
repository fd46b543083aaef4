"""Pydantic schemas for API request/response."""

from boxoffice.schemas.booking import (
    BookingCreate,
    BookingDetailResponse,
    BookingResponse,
)
from boxoffice.schemas.payment import (
    PaymentCreate,
    PaymentDetailResponse,
    PaymentInitiationResponse,
    PaymentResponse,
)
from boxoffice.schemas.price_rule import (
    PriceRuleCreate,
    PriceRuleResponse,
    PriceRuleUpdate,
    QuoteRequest,
    QuoteResponse,
)
from boxoffice.schemas.seat import (
    SeatLockRequest,
    SeatLockResponse,
    SeatMapResponse,
    SeatState,
)
from boxoffice.schemas.showing import ShowingResponse

__all__ = [
    "ShowingResponse",
    "SeatMapResponse",
    "SeatState",
    "SeatLockRequest",
    "SeatLockResponse",
    "QuoteRequest",
    "QuoteResponse",
    "PriceRuleCreate",
    "PriceRuleUpdate",
    "PriceRuleResponse",
    "BookingCreate",
    "BookingResponse",
    "BookingDetailResponse",
    "PaymentCreate",
    "PaymentResponse",
    "PaymentDetailResponse",
    "PaymentInitiationResponse",
]
