"""Shared Redis connection for seat leases, reservation drafts and seat-map broadcasts.

Leases, drafts and broadcasts all read hash fields and JSON payloads as text,
so every client is built with ``decode_responses=True``.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from boxoffice.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

_redis_client: redis.Redis | None = None


def create_redis(url: str | None = None) -> redis.Redis:
    """Build a text-mode client for ``url`` (defaults to the configured server)."""
    return redis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
    )


async def get_redis() -> redis.Redis:
    """Process-wide client, created on first use."""
    global _redis_client
    if _redis_client is None:
        _redis_client = create_redis()
        logger.info(
            f"Redis client for {settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"
        )
    return _redis_client


async def ping_redis() -> bool:
    """
    Round trip to the lease store.

    Returns:
        False when Redis is unreachable; seat operations report TRANSIENT
        until it answers again.
    """
    client = await get_redis()
    try:
        return bool(await client.ping())
    except RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        return False


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
