"""
Reservation draft store.

A draft is the priced, not-yet-paid snapshot of a checkout, stored as JSON in
Redis under ``booking_draft:{draft_id}`` with its own TTL.
"""

import logging
from datetime import datetime

import redis.asyncio as redis
from pydantic import BaseModel, Field, ValidationError, model_validator
from redis.exceptions import RedisError

from boxoffice.errors import TransientInfrastructureError

logger = logging.getLogger(__name__)


class CustomerContact(BaseModel):
    """Contact details captured at checkout."""

    full_name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    phone: str | None = Field(None, max_length=30)


class ReservationDraft(BaseModel):
    """Priced seat selection awaiting payment."""

    draft_id: str
    owner_id: str | None = None
    lease_owner: str
    showing_id: str
    seat_ids: list[str]
    unit_prices: list[int]
    total_amount: int
    currency: str
    customer_contact: str | None = None
    created_at: datetime

    @model_validator(mode="after")
    def check_prices(self) -> "ReservationDraft":
        if not self.seat_ids:
            raise ValueError("draft must hold at least one seat")
        if len(self.seat_ids) != len(self.unit_prices):
            raise ValueError("every seat needs exactly one unit price")
        if sum(self.unit_prices) != self.total_amount:
            raise ValueError("total_amount must equal the sum of unit prices")
        return self


class DraftStore:
    """Redis-backed draft storage with TTL."""

    KEY_PREFIX = "booking_draft"

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    def _get_key(self, draft_id: str) -> str:
        return f"{self.KEY_PREFIX}:{draft_id}"

    async def create(self, draft: ReservationDraft, ttl_seconds: int) -> None:
        """Store the draft, replacing any existing draft with the same id."""
        try:
            await self.redis.set(
                self._get_key(draft.draft_id), draft.model_dump_json(), ex=ttl_seconds
            )
        except RedisError as e:
            raise TransientInfrastructureError(f"Draft store unavailable: {e}") from e

    async def get(self, draft_id: str) -> ReservationDraft | None:
        try:
            raw = await self.redis.get(self._get_key(draft_id))
        except RedisError as e:
            raise TransientInfrastructureError(f"Draft store unavailable: {e}") from e
        if raw is None:
            return None
        try:
            return ReservationDraft.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Discarding unreadable draft {draft_id}: {e}")
            return None

    async def delete(self, draft_id: str) -> None:
        try:
            await self.redis.delete(self._get_key(draft_id))
        except RedisError as e:
            raise TransientInfrastructureError(f"Draft store unavailable: {e}") from e

    async def extend(self, draft_id: str, ttl_seconds: int) -> bool:
        """
        Reset the draft TTL.

        Returns:
            False if the draft no longer exists.
        """
        try:
            return bool(await self.redis.expire(self._get_key(draft_id), ttl_seconds))
        except RedisError as e:
            raise TransientInfrastructureError(f"Draft store unavailable: {e}") from e
