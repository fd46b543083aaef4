"""
Seat status notifications over Redis Pub/Sub.

Channel format: showing_seats:{showing_id}
Publishing is best effort; a failed publish is logged and never surfaces to the
operation that triggered it.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import redis.asyncio as redis
from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)

# Keeps fire-and-forget publish tasks referenced until they finish
_pending_tasks: set[asyncio.Task] = set()


def channel_for(showing_id: str) -> str:
    return f"showing_seats:{showing_id}"


class SeatEventBroadcaster:
    """Publishes seat lock/unlock and booking events to a showing's channel."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def publish(self, showing_id: str, event: dict[str, Any]) -> None:
        """Publish one event; failures are logged and swallowed."""
        channel = channel_for(showing_id)
        try:
            await self.redis.publish(channel, json.dumps(event, default=str))
            logger.debug(f"Published {event.get('action')} to {channel}")
        except Exception as e:
            logger.warning(f"Seat event publish to {channel} failed: {e}")

    def fire(self, showing_id: str, event: dict[str, Any]) -> None:
        """Schedule ``publish`` without waiting for it."""
        task = asyncio.create_task(self.publish(showing_id, event))
        _pending_tasks.add(task)
        task.add_done_callback(_pending_tasks.discard)

    @asynccontextmanager
    async def subscribe(self, showing_id: str) -> AsyncIterator[PubSub]:
        """Subscribe to a showing's channel for the duration of the block."""
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel_for(showing_id))
        try:
            yield pubsub
        finally:
            await pubsub.unsubscribe(channel_for(showing_id))
            await pubsub.aclose()
