"""
Response cache for read operations.

Pattern: cache-aside keyed by the canonical request parameters, with
explicit invalidation after writes.

Key space (nothing is ever found by wildcard scan):
    {group}:{digest}                 one entry per request, SET with EX ttl
    {prefix}{resource}:collection    zset of list entries (the collection group)
    {prefix}{resource}:item:{id}     zset of entries for reads of that id
    {prefix}{resource}:read          zset of reads without an id
    {prefix}{resource}:keys          zset of every entry and group key of the resource
    {prefix}__resources__            set of resource names

Index members are scored by write time and anything older than the TTL is
pruned on each write, so the indexes only hold entries that can still be live.

Usage:
    cache = ResponseCache(client, prefix="api_server:", ttl=300, enabled=True)

    body = await cache.remember("products", "list", params, compute)

    await cache.flush("products", 5)       # item 5 + collection
    await cache.flush_collection("products")
    await cache.flush("products")          # everything for products
    await cache.flush()                    # everything
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from ..core.errors import CacheBackendError
from ..core.utils import canonical_json
from .client import RedisClient

logger = logging.getLogger(__name__)


CACHEABLE_KINDS = frozenset({"list", "read"})
KIND_ALIASES = {"index": "list", "show": "read"}

RESOURCES_KEY = "__resources__"

_MISS = object()


def normalize_kind(kind: str) -> str:
    return KIND_ALIASES.get(kind, kind)


def params_digest(params: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of params."""
    return hashlib.sha256(canonical_json(params).encode("utf-8")).hexdigest()


def collection_key(prefix: str, resource: str) -> str:
    return f"{prefix}{resource}:collection"


def item_key(prefix: str, resource: str, identifier: Any) -> str:
    return f"{prefix}{resource}:item:{identifier}"


def index_key(prefix: str, resource: str) -> str:
    return f"{prefix}{resource}:keys"


def entry_key(group: str, digest: str) -> str:
    return f"{group}:{digest}"


def derive_cache_key(resource: str, kind: str, params: dict[str, Any], prefix: str = "") -> tuple[str, str]:
    """
    Map a read request to its (group key, digest).

    The entry itself lives at entry_key(group, digest). Deterministic: equal
    (resource, kind, params) always give the same pair, regardless of params
    key order.

    Examples:
        derive_cache_key("products", "list", {"page": 1})
            -> ("products:collection", "<sha256>")
        derive_cache_key("products", "read", {"id": 5, "fields": ["name"]})
            -> ("products:item:5", "<sha256 of {'fields': ['name']}>")
    """
    kind = normalize_kind(kind)

    if kind == "list":
        return collection_key(prefix, resource), params_digest(params)

    identifier = params.get("id")
    if kind == "read" and identifier is not None:
        rest = {k: v for k, v in params.items() if k != "id"}
        return item_key(prefix, resource, identifier), params_digest(rest)

    return f"{prefix}{resource}:{kind}", params_digest(params)


class ResponseCache:
    """
    Cache-aside store for list/read response bodies.

    Backend failures never reach the caller: reads fall back to compute,
    writes and flushes are skipped with a warning.
    """

    def __init__(
        self,
        client: Optional[RedisClient],
        prefix: str = "api_server:",
        ttl: int = 300,
        enabled: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.prefix = prefix
        self.ttl = ttl
        self._enabled = enabled
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._enabled and self.client is not None

    def key_for(self, resource: str, kind: str, params: dict[str, Any]) -> tuple[str, str]:
        return derive_cache_key(resource, kind, params, prefix=self.prefix)

    async def remember(
        self,
        resource: str,
        kind: str,
        params: dict[str, Any],
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached body for this request, computing and storing it on a miss.

        Only list/read (and their index/show aliases) are cached; any other
        kind, or a disabled cache, runs compute directly.
        """
        kind = normalize_kind(kind)
        if not self.enabled or kind not in CACHEABLE_KINDS:
            return await compute()

        group, digest = self.key_for(resource, kind, params)
        key = entry_key(group, digest)

        cached = await self._read(key)
        if cached is not _MISS:
            logger.debug(f"Cache HIT: {key}")
            return cached

        logger.debug(f"Cache MISS: {key}")
        value = await compute()
        await self._write(resource, group, key, value)
        return value

    async def flush(self, resource: Optional[str] = None, identifier: Any = None) -> bool:
        """
        Invalidate cached responses.

        resource + identifier: the item group and the collection group.
        resource only: every key recorded for the resource.
        neither: every resource in the namespace.

        Returns False when the backend failed (the failure is logged).
        """
        if self.client is None:
            return False

        try:
            if resource and identifier is not None and identifier != "":
                await self._flush_groups(
                    item_key(self.prefix, resource, identifier),
                    collection_key(self.prefix, resource),
                )
                logger.info(f"Cache flushed: {resource}/{identifier}")
            elif resource:
                await self._flush_resource(resource)
                logger.info(f"Cache flushed: {resource}")
            else:
                names = await self.client.smembers(self._namespace_key)
                for name in sorted(names):
                    await self._flush_resource(name)
                await self.client.delete(self._namespace_key)
                logger.info(f"Cache flushed: all ({len(names)} resources)")
            return True
        except CacheBackendError as e:
            logger.warning(f"Cache flush failed for {resource or '*'}: {e}")
            return False

    async def flush_collection(self, resource: str) -> bool:
        """Invalidate only the collection group of a resource."""
        if self.client is None:
            return False

        try:
            await self._flush_groups(collection_key(self.prefix, resource))
            logger.info(f"Cache flushed: {resource} collection")
            return True
        except CacheBackendError as e:
            logger.warning(f"Cache flush failed for {resource} collection: {e}")
            return False

    # === Internals ===

    @property
    def _namespace_key(self) -> str:
        return f"{self.prefix}{RESOURCES_KEY}"

    async def _flush_groups(self, *groups: str) -> None:
        keys: list[str] = []
        for group in groups:
            keys.extend(await self.client.zrange(group, 0, -1))
        await self.client.delete(*sorted(set(keys)), *groups)

    async def _flush_resource(self, resource: str) -> None:
        index = index_key(self.prefix, resource)
        keys = await self.client.zrange(index, 0, -1)
        await self.client.delete(*sorted(set(keys)), index, collection_key(self.prefix, resource))

    async def _read(self, key: str) -> Any:
        try:
            raw = await self.client.get(key)
        except CacheBackendError as e:
            logger.warning(f"Cache read error for {key}: {e}")
            return _MISS

        if raw is None:
            return _MISS

        try:
            entry = json.loads(raw)
            stored_at = float(entry["stored_at"])
            value = entry["value"]
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            await self._discard(key)
            return _MISS

        if self._clock() - stored_at > self.ttl:
            await self._discard(key)
            return _MISS
        return value

    async def _discard(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except CacheBackendError as e:
            logger.warning(f"Cache delete error for {key}: {e}")

    async def _write(self, resource: str, group: str, key: str, value: Any) -> None:
        now = self._clock()
        payload = json.dumps(
            {"stored_at": now, "value": value},
            ensure_ascii=False,
            default=str,
        )
        index = index_key(self.prefix, resource)
        try:
            await self.client.set(key, payload, ex=self.ttl)
            for name, members in ((group, {key: now}), (index, {key: now, group: now})):
                await self.client.zremrangebyscore(name, "-inf", now - self.ttl)
                await self.client.zadd(name, members)
                await self.client.expire(name, self.ttl)
            await self.client.sadd(self._namespace_key, resource)
            logger.debug(f"Cached response for {key} (TTL: {self.ttl}s)")
        except CacheBackendError as e:
            logger.warning(f"Cache write error for {key}: {e}")
