"""Price rule model."""

import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from boxoffice.clock import utcnow
from boxoffice.models.base import Base, new_id
from boxoffice.models.catalog import SeatType

if TYPE_CHECKING:
    from boxoffice.models.catalog import Cinema

GLOBAL_SCOPE = "GLOBAL"


class DayType(str, enum.Enum):
    """Day type enum."""

    WEEKDAY = "WEEKDAY"
    WEEKEND = "WEEKEND"


class PriceRule(Base):
    """Unit price for a seat type on a day type, globally or for one cinema."""

    __tablename__ = "price_rules"

    rule_id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_id)
    cinema_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("cinemas.cinema_id")
    )
    # cinema_id, or GLOBAL_SCOPE; NULLs never collide in a unique index
    scope_key: Mapped[str] = mapped_column(String(26), nullable=False)
    day_type: Mapped[DayType] = mapped_column(Enum(DayType), nullable=False)
    seat_type: Mapped[SeatType] = mapped_column(Enum(SeatType), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime)

    cinema: Mapped["Cinema | None"] = relationship("Cinema", back_populates="price_rules")

    __table_args__ = (
        UniqueConstraint("scope_key", "day_type", "seat_type", name="uk_price_rule_slot"),
    )

    @staticmethod
    def scope_for(cinema_id: str | None) -> str:
        return cinema_id or GLOBAL_SCOPE
