"""Price resolution and price rule administration."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from boxoffice.clock import utcnow
from boxoffice.errors import ConflictError, NotFoundError, ValidationError
from boxoffice.models.catalog import Cinema, Seat, SeatType, Showing
from boxoffice.models.price_rule import DayType, PriceRule

logger = logging.getLogger(__name__)


def classify_day(start_at: datetime) -> DayType:
    """
    Saturday and Sunday are weekend.

    Uses the calendar day of the stored start instant as-is; showings in a
    timezone far from UTC can land on the neighbouring day.
    """
    return DayType.WEEKEND if start_at.weekday() >= 5 else DayType.WEEKDAY


def resolve_unit_price(
    rules: list[PriceRule],
    cinema_id: str,
    day_type: DayType,
    seat_type: SeatType,
    base_price: int,
) -> int:
    """Cinema rule, then global rule, then the showing's base price."""
    by_scope = {
        rule.cinema_id: rule.price
        for rule in rules
        if rule.is_active and rule.day_type == day_type and rule.seat_type == seat_type
    }
    if cinema_id in by_scope:
        return by_scope[cinema_id]
    if None in by_scope:
        return by_scope[None]
    return base_price


@dataclass(frozen=True)
class SeatQuote:
    seat_id: str
    seat_type: SeatType
    unit_price: int


@dataclass(frozen=True)
class QuoteSet:
    """Quotes in request order for one showing."""

    showing_id: str
    day_type: DayType
    quotes: list[SeatQuote]

    @property
    def total(self) -> int:
        return sum(q.unit_price for q in self.quotes)


class PriceResolver:
    """Quotes seats for a showing against the price rule hierarchy."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load_showing(self, showing_id: str) -> Showing:
        result = await self.db.execute(
            select(Showing)
            .options(selectinload(Showing.room))
            .where(Showing.showing_id == showing_id)
        )
        showing = result.scalar_one_or_none()
        if showing is None:
            raise ValidationError(f"Showing {showing_id} not found")
        return showing

    async def _load_rules(self, cinema_id: str, day_type: DayType) -> list[PriceRule]:
        result = await self.db.execute(
            select(PriceRule).where(
                and_(
                    PriceRule.day_type == day_type,
                    PriceRule.is_active.is_(True),
                    or_(PriceRule.cinema_id == cinema_id, PriceRule.cinema_id.is_(None)),
                )
            )
        )
        return list(result.scalars().all())

    async def quote(self, showing_id: str, seat_id: str) -> SeatQuote:
        """Price a single seat."""
        quote_set = await self.quote_many(showing_id, [seat_id])
        return quote_set.quotes[0]

    async def quote_many(self, showing_id: str, seat_ids: list[str]) -> QuoteSet:
        """
        Price every seat or none.

        Raises:
            ValidationError: Unknown showing, or a seat outside the showing's room
        """
        showing = await self._load_showing(showing_id)
        result = await self.db.execute(select(Seat).where(Seat.seat_id.in_(seat_ids)))
        seats = {seat.seat_id: seat for seat in result.scalars().all()}

        missing = [
            seat_id
            for seat_id in seat_ids
            if seat_id not in seats or seats[seat_id].room_id != showing.room_id
        ]
        if missing:
            raise ValidationError(
                f"Seats {missing} do not belong to showing {showing_id}"
            )

        return await self.quote_for(showing, [seats[seat_id] for seat_id in seat_ids])

    async def quote_for(self, showing: Showing, seats: list[Seat]) -> QuoteSet:
        """Price already-loaded seats of an already-loaded showing."""
        day_type = classify_day(showing.start_at)
        cinema_id = showing.room.cinema_id
        rules = await self._load_rules(cinema_id, day_type)
        quotes = [
            SeatQuote(
                seat_id=seat.seat_id,
                seat_type=seat.seat_type,
                unit_price=resolve_unit_price(
                    rules, cinema_id, day_type, seat.seat_type, showing.base_price
                ),
            )
            for seat in seats
        ]
        return QuoteSet(showing_id=showing.showing_id, day_type=day_type, quotes=quotes)


class PriceRuleService:
    """Service for price rule administration."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_rule(self, rule_id: str) -> PriceRule | None:
        result = await self.db.execute(
            select(PriceRule).where(PriceRule.rule_id == rule_id)
        )
        return result.scalar_one_or_none()

    async def list_rules(
        self,
        cinema_id: str | None = None,
        global_only: bool = False,
        day_type: DayType | None = None,
        seat_type: SeatType | None = None,
        is_active: bool | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[PriceRule], int]:
        """List rules with optional filtering and pagination."""
        query = select(PriceRule)
        if global_only:
            query = query.where(PriceRule.cinema_id.is_(None))
        elif cinema_id:
            query = query.where(PriceRule.cinema_id == cinema_id)
        if day_type:
            query = query.where(PriceRule.day_type == day_type)
        if seat_type:
            query = query.where(PriceRule.seat_type == seat_type)
        if is_active is not None:
            query = query.where(PriceRule.is_active == is_active)

        count_result = await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar() or 0

        query = query.order_by(
            PriceRule.scope_key, PriceRule.day_type, PriceRule.seat_type
        )
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def create_rule(
        self,
        day_type: DayType,
        seat_type: SeatType,
        price: int,
        cinema_id: str | None = None,
        is_active: bool = True,
    ) -> PriceRule:
        """
        Create a rule for one (scope, day type, seat type) slot.

        Raises:
            ValidationError: Non-positive price or unknown cinema
            ConflictError: The slot already has a rule
        """
        if price <= 0:
            raise ValidationError("Price must be greater than zero")
        if cinema_id is not None and await self.db.get(Cinema, cinema_id) is None:
            raise ValidationError(f"Cinema {cinema_id} not found")

        scope_key = PriceRule.scope_for(cinema_id)
        existing = await self.db.execute(
            select(PriceRule.rule_id).where(
                and_(
                    PriceRule.scope_key == scope_key,
                    PriceRule.day_type == day_type,
                    PriceRule.seat_type == seat_type,
                )
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                f"A {day_type.value} rule for {seat_type.value} seats already exists "
                f"in scope {scope_key}"
            )

        rule = PriceRule(
            cinema_id=cinema_id,
            scope_key=scope_key,
            day_type=day_type,
            seat_type=seat_type,
            price=price,
            is_active=is_active,
        )
        self.db.add(rule)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("A rule for this slot was created concurrently") from e
        await self.db.refresh(rule)
        logger.info(f"Created price rule {rule.rule_id} for {scope_key}/{day_type.value}/{seat_type.value}")
        return rule

    async def update_rule(
        self,
        rule_id: str,
        price: int | None = None,
        is_active: bool | None = None,
    ) -> PriceRule:
        rule = await self.get_rule(rule_id)
        if rule is None:
            raise NotFoundError(f"Price rule {rule_id} not found")
        if price is not None:
            if price <= 0:
                raise ValidationError("Price must be greater than zero")
            rule.price = price
        if is_active is not None:
            rule.is_active = is_active
        rule.updated_at = utcnow()
        await self.db.commit()
        await self.db.refresh(rule)
        return rule

    async def delete_rule(self, rule_id: str) -> None:
        rule = await self.get_rule(rule_id)
        if rule is None:
            raise NotFoundError(f"Price rule {rule_id} not found")
        await self.db.delete(rule)
        await self.db.commit()

