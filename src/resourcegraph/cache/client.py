"""
Redis client for the response cache.

An explicitly owned connection handle: created at startup, passed to the
components that need it, closed at shutdown. Backend failures surface as
CacheBackendError so callers can recover locally.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..core.errors import CacheBackendError

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Redis client handle.

    Usage:
        client = RedisClient("redis://redis:6379/0")
        await client.connect()

        await client.set("key", "value", ex=3600)
        value = await client.get("key")

        await client.disconnect()

    An existing connection (e.g. a test double) can be wrapped instead:
        client = RedisClient(redis=connection)
    """

    def __init__(self, redis_url: Optional[str] = None, redis: Optional[aioredis.Redis] = None):
        """
        Initialize Redis client.

        Args:
            redis_url: Redis connection URL
            redis: Already created connection to wrap
        """
        if redis_url is None and redis is None:
            raise ValueError("redis_url or redis is required")
        self.redis_url = redis_url
        self._redis = redis
        self._connected = redis is not None

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self):
        """Connect to Redis"""
        if self._connected:
            return

        logger.info(f"Connecting to Redis: {self.redis_url}")
        self._redis = aioredis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._connected = True
        logger.info("Redis client connected")

    async def disconnect(self):
        """Disconnect from Redis"""
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except (RedisError, OSError) as e:
                logger.warning(f"Error while closing Redis connection: {e}")
            self._redis = None
            self._connected = False
            logger.info("Redis client disconnected")

    @property
    def redis(self) -> aioredis.Redis:
        """Get underlying Redis connection"""
        if not self._connected or self._redis is None:
            raise RuntimeError("Redis client not connected. Call await client.connect() first.")
        return self._redis

    async def _execute(self, command: str, *args: Any, **kwargs: Any) -> Any:
        """Run a command, converting backend failures into CacheBackendError."""
        try:
            return await getattr(self.redis, command)(*args, **kwargs)
        except (RedisError, OSError, RuntimeError) as e:
            raise CacheBackendError(f"Redis {command} failed: {e}") from e

    async def ping(self) -> bool:
        return bool(await self._execute("ping"))

    # === Key-Value operations ===

    async def get(self, key: str) -> Optional[str]:
        """Get value by key"""
        return await self._execute("get", key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        """
        Set key-value pair.

        Args:
            key: Key name
            value: Value to store
            ex: Expiration time in seconds (TTL)
        """
        return await self._execute("set", key, value, ex=ex)

    async def delete(self, *keys: str) -> int:
        """Delete one or more keys. Returns number of keys deleted."""
        if not keys:
            return 0
        return await self._execute("delete", *keys)

    async def expire(self, key: str, seconds: int) -> bool:
        """Set expiration time for a key"""
        return await self._execute("expire", key, seconds)

    # === Sorted set operations ===

    async def zadd(self, name: str, mapping: dict[str, float]) -> int:
        """Add members with their scores to a sorted set"""
        return await self._execute("zadd", name, mapping)

    async def zrange(self, name: str, start: int, end: int) -> list[str]:
        """Members of a sorted set by rank"""
        return list(await self._execute("zrange", name, start, end))

    async def zremrangebyscore(self, name: str, min: float | str, max: float | str) -> int:
        """Remove sorted set members scored between min and max (inclusive)"""
        return await self._execute("zremrangebyscore", name, min, max)

    # === Set operations ===

    async def sadd(self, name: str, *values: str) -> int:
        """Add members to a set"""
        return await self._execute("sadd", name, *values)

    async def smembers(self, name: str) -> set[str]:
        """All members of a set"""
        return set(await self._execute("smembers", name))
