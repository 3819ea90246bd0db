"""In-process TTL cache for completed pipeline results.

One instance per process, passed by reference to whoever needs it. Entries
are valid while ``now - created_at < ttl``; expiry is a timestamp comparison
at read time (cachetools.TTLCache), no background sweep.

Usage:
    cache = ResultCache(ttl=300, maxsize=1000)
    entry = await cache.get("mykey")
    await cache.set("mykey", result)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog
from cachetools import TTLCache  # type: ignore[import-untyped]

from adsift.core.metrics import cache_hits_total, cache_misses_total

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    created_at: float


class ResultCache(Generic[T]):
    """TTL-enforced key/value store guarded by an asyncio.Lock.

    ``clock`` is the TTL clock; it defaults to ``time.monotonic`` and is
    injectable so expiry can be driven deterministically.
    """

    def __init__(
        self,
        ttl: float,
        maxsize: int = 1000,
        clock: Callable[[], float] = time.monotonic,
        cache_type: str = "pipeline",
    ):
        self._clock = clock
        self._ttl = ttl
        self._cache_type = cache_type
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)
        self._lock = asyncio.Lock()

    async def get(self, key: str, *, record: bool = True) -> CacheEntry[T] | None:
        """Return the live entry for ``key`` or None when absent or expired.

        ``record=False`` skips the hit/miss counters, for internal rechecks.
        """
        async with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            if record:
                logger.debug("cache.miss", key_preview=key[:16])
                cache_misses_total.labels(cache_type=self._cache_type).inc()
            return None
        if record:
            logger.debug("cache.hit", key_preview=key[:16], age=self._clock() - entry.created_at)
            cache_hits_total.labels(cache_type=self._cache_type).inc()
        return entry

    async def set(self, key: str, value: T) -> CacheEntry[T]:
        """Store ``value`` under ``key``, overwriting any previous entry."""
        entry = CacheEntry(value=value, created_at=self._clock())
        async with self._lock:
            self._entries[key] = entry
        logger.debug("cache.set", key_preview=key[:16], ttl=self._ttl)
        return entry

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
