"""
Cache module - Redis client and response cache.
"""

from __future__ import annotations

from .client import RedisClient
from .response_cache import (
    CACHEABLE_KINDS,
    ResponseCache,
    derive_cache_key,
    entry_key,
    params_digest,
)

__all__ = [
    "RedisClient",
    "ResponseCache",
    "CACHEABLE_KINDS",
    "derive_cache_key",
    "entry_key",
    "params_digest",
]
