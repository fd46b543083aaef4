"""TTL-keyed lease store on Redis.

Each lease is a hash ``{owner, leased_at, expires_at}`` under a namespaced key.
Compare-and-set is done in Lua so every operation is one round trip, and Redis
key expiry releases leases left behind by crashed processes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

import redis.asyncio as redis
from redis.exceptions import RedisError

from boxoffice.clock import Clock, utcnow
from boxoffice.errors import TransientInfrastructureError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Lease:
    """A live ownership claim on a key."""

    key: str
    owner: str
    leased_at: datetime
    expires_at: datetime


class LeaseStore:
    """
    Redis-based lease store.

    Unlike a mutex there is no waiting: ``acquire`` either takes the key for
    the caller or reports that someone else holds it.
    """

    # Take the key if free, or refresh it if the caller already owns it
    ACQUIRE_SCRIPT = """
    local owner = redis.call("hget", KEYS[1], "owner")
    if owner and owner ~= ARGV[1] then
        return 0
    end
    redis.call("hset", KEYS[1], "owner", ARGV[1], "expires_at", ARGV[3])
    redis.call("hsetnx", KEYS[1], "leased_at", ARGV[2])
    redis.call("pexpire", KEYS[1], ARGV[4])
    return 1
    """

    # Lua script for safe release (only release if we own the lease)
    RELEASE_SCRIPT = """
    if redis.call("hget", KEYS[1], "owner") == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Lua script for lease extension
    EXTEND_SCRIPT = """
    if redis.call("hget", KEYS[1], "owner") == ARGV[1] then
        redis.call("hset", KEYS[1], "expires_at", ARGV[2])
        return redis.call("pexpire", KEYS[1], ARGV[3])
    else
        return 0
    end
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        namespace: str = "lease",
        clock: Clock = utcnow,
    ):
        """
        Initialize lease store.

        Args:
            redis_client: Redis client created with ``decode_responses=True``
            namespace: Prefix for every key written by this store
            clock: Source of the timestamps recorded in the lease
        """
        self.redis = redis_client
        self.namespace = namespace
        self.clock = clock
        self._acquire_script = self.redis.register_script(self.ACQUIRE_SCRIPT)
        self._release_script = self.redis.register_script(self.RELEASE_SCRIPT)
        self._extend_script = self.redis.register_script(self.EXTEND_SCRIPT)

    def _redis_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def acquire(self, key: str, owner: str, ttl_seconds: int) -> bool:
        """
        Take the lease on ``key`` for ``owner``.

        Returns:
            True if the caller now holds the lease (newly or already),
            False if a different owner holds it.
        """
        now = self.clock()
        expires_at = now + timedelta(seconds=ttl_seconds)
        try:
            result = await self._acquire_script(
                keys=[self._redis_key(key)],
                args=[owner, now.isoformat(), expires_at.isoformat(), ttl_seconds * 1000],
            )
        except RedisError as e:
            raise TransientInfrastructureError(f"Lease store unavailable: {e}") from e
        return bool(result)

    async def release(self, key: str, owner: str) -> bool:
        """
        Release the lease.

        Returns:
            True if released, False if ``owner`` did not hold it.
        """
        try:
            result = await self._release_script(
                keys=[self._redis_key(key)], args=[owner]
            )
        except RedisError as e:
            raise TransientInfrastructureError(f"Lease store unavailable: {e}") from e
        return bool(result)

    async def extend(self, key: str, owner: str, ttl_seconds: int) -> bool:
        """
        Reset the lease TTL to ``ttl_seconds`` from now.

        Returns:
            True if extended, False if ``owner`` did not hold it.
        """
        expires_at = self.clock() + timedelta(seconds=ttl_seconds)
        try:
            result = await self._extend_script(
                keys=[self._redis_key(key)],
                args=[owner, expires_at.isoformat(), ttl_seconds * 1000],
            )
        except RedisError as e:
            raise TransientInfrastructureError(f"Lease store unavailable: {e}") from e
        return bool(result)

    async def get(self, key: str) -> Lease | None:
        """Read the current lease on ``key``, if any."""
        try:
            data = await self.redis.hgetall(self._redis_key(key))
        except RedisError as e:
            raise TransientInfrastructureError(f"Lease store unavailable: {e}") from e
        if not data or "owner" not in data:
            return None
        return Lease(
            key=key,
            owner=data["owner"],
            leased_at=datetime.fromisoformat(data["leased_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )

    async def list_active(self, prefix: str) -> set[str]:
        """
        Scan for live keys starting with ``prefix``.

        Best effort: keys expiring during the scan may or may not be included.
        """
        namespace_prefix = f"{self.namespace}:"
        keys: set[str] = set()
        try:
            async for redis_key in self.redis.scan_iter(
                match=f"{namespace_prefix}{prefix}*", count=500
            ):
                keys.add(redis_key[len(namespace_prefix):])
        except RedisError as e:
            raise TransientInfrastructureError(f"Lease store unavailable: {e}") from e
        return keys
