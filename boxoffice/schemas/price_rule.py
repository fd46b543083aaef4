"""Price rule schemas."""

from datetime import datetime

from pydantic import Field

from boxoffice.models.catalog import SeatType
from boxoffice.models.price_rule import DayType
from boxoffice.schemas.common import BaseSchema


class PriceRuleCreate(BaseSchema):
    """Schema for creating a price rule. No cinema means a global rule."""

    cinema_id: str | None = None
    day_type: DayType
    seat_type: SeatType
    price: int = Field(..., gt=0)
    is_active: bool = True


class PriceRuleUpdate(BaseSchema):
    """Schema for updating a price rule."""

    price: int | None = Field(None, gt=0)
    is_active: bool | None = None


class PriceRuleResponse(BaseSchema):
    """Schema for price rule response."""

    rule_id: str
    cinema_id: str | None
    day_type: DayType
    seat_type: SeatType
    price: int
    is_active: bool
    created_at: datetime
    updated_at: datetime | None = None


class QuoteRequest(BaseSchema):
    """Schema for pricing seats of a showing."""

    showing_id: str
    seat_ids: list[str] = Field(..., min_length=1, max_length=10)


class SeatQuoteResponse(BaseSchema):
    seat_id: str
    seat_type: SeatType
    unit_price: int


class QuoteResponse(BaseSchema):
    """Priced seats and their total."""

    showing_id: str
    day_type: DayType
    currency: str
    quotes: list[SeatQuoteResponse]
    total: int
