"""TTL caches for classified queries and search results."""
from __future__ import annotations

import inspect
import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Any, Generic, TypeVar

from .config import CacheSettings
from .models import CacheEntry, CacheStats, ProcessedQuery, ScoredDocument
from .observability import CACHE_LOOKUPS

logger = logging.getLogger(__name__)

T = TypeVar("T")

Compute = Callable[[], Any]


class CacheKind(str, Enum):
    SEARCH = "search"
    QUERY = "query"


class ExpiringCache(Generic[T]):
    """Bounded key/value store whose entries expire after a fixed TTL.

    All map operations happen under one lock. Computation on a miss runs
    outside the lock, so two concurrent misses on one key both compute and
    the later write wins.
    """

    def __init__(
        self,
        kind: CacheKind,
        ttl_seconds: float,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.kind = kind
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def make_key(self, key: str | None) -> str:
        return f"{self.kind.value}:{(key or '').lower().strip()}"

    def lookup(self, key: str | None) -> CacheEntry[T] | None:
        """Return the live entry for ``key``, or None if missing or expired."""

        cache_key = self.make_key(key)
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            return entry

    def put(self, key: str | None, value: T) -> None:
        cache_key = self.make_key(key)
        with self._lock:
            self._cleanup_if_needed()
            self._entries[cache_key] = CacheEntry(value=value, expires_at=self._clock() + self.ttl_seconds)

    async def get_or_compute(self, key: str | None, compute: Compute) -> T:
        """Return the cached value or compute, store and return a fresh one.

        ``compute`` may be a plain callable or a coroutine function. When it
        raises, nothing is stored and the error propagates.
        """

        cached = self.lookup(key)
        if cached is not None:
            CACHE_LOOKUPS.labels(self.kind.value, "hit").inc()
            logger.debug("%s cache HIT for %r", self.kind.value, key)
            return cached.value

        CACHE_LOOKUPS.labels(self.kind.value, "miss").inc()
        logger.debug("%s cache MISS for %r", self.kind.value, key)
        result = compute()
        if inspect.isawaitable(result):
            result = await result
        self.put(key, result)
        return result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def valid_count(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for entry in self._entries.values() if not entry.is_expired(now))

    def _cleanup_if_needed(self) -> None:
        # Caller holds the lock.
        if len(self._entries) < self.max_size:
            return
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self.max_size:
            stalest = sorted(self._entries.items(), key=lambda item: item[1])[: self.max_size // 4]
            for key, _ in stalest:
                del self._entries[key]
            logger.info(
                "%s cache cleanup removed %d expired and %d stalest entries",
                self.kind.value,
                len(expired),
                len(stalest),
            )


class CacheService:
    """Owns the per-kind caches shared by all concurrent requests."""

    def __init__(self, settings: CacheSettings | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        settings = settings or CacheSettings()
        self.search: ExpiringCache[list[ScoredDocument]] = ExpiringCache(
            CacheKind.SEARCH, settings.search_ttl_seconds, settings.max_size, clock
        )
        self.query: ExpiringCache[ProcessedQuery] = ExpiringCache(
            CacheKind.QUERY, settings.query_ttl_seconds, settings.max_size, clock
        )
        self._caches: dict[CacheKind, ExpiringCache] = {CacheKind.SEARCH: self.search, CacheKind.QUERY: self.query}

    async def get_or_compute_search(self, search_text: str, compute: Compute) -> list[ScoredDocument]:
        return await self.search.get_or_compute(search_text, compute)

    async def get_or_compute_query(self, query: str | None, compute: Compute) -> ProcessedQuery:
        return await self.query.get_or_compute(query, compute)

    def invalidate(self, kind: CacheKind) -> None:
        self._caches[kind].clear()
        logger.info("%s cache invalidated", kind.value)

    def invalidate_all(self) -> None:
        for cache in self._caches.values():
            cache.clear()
        logger.info("All caches invalidated")

    def stats(self) -> CacheStats:
        return CacheStats(
            search_cache_size=self.search.size(),
            query_cache_size=self.query.size(),
            search_cache_valid=self.search.valid_count(),
            query_cache_valid=self.query.valid_count(),
        )
