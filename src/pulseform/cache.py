"""Async key/value cache with TTL, request deduplication and stale fallback.

Keys are :class:`CacheKey` values, never hand-built strings: every call
site that means the same provider resource produces the same key because
there is exactly one serialisation.

The cache is owned by a single event loop. Every mutation happens
synchronously between awaits, and the in-flight task map guarantees at
most one fill per key at a time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date
from enum import Enum
from fnmatch import fnmatchcase
from typing import Any, Awaitable, Callable

from pulseform.errors import ProviderError
from pulseform.models import DateRange

logger = logging.getLogger(__name__)


def _normalize(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, DateRange):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class CacheKey:
    """Canonical identity of a cached provider resource."""

    provider: str
    resource: str
    params: tuple[tuple[str, str], ...] = ()

    @classmethod
    def build(cls, provider: Any, resource: str, **params: Any) -> CacheKey:
        """Build a key, normalising parameter values and their order.

        ``None`` parameters are dropped so that optional filters left unset
        map to the same key as filters never mentioned.
        """
        normalized = tuple(
            sorted((name, _normalize(value)) for name, value in params.items() if value is not None)
        )
        return cls(_normalize(provider), resource, normalized)

    def serialize(self) -> str:
        """The one string form of this key, e.g. ``wearable:samples:metric=hrv,range=...``."""
        query = ",".join(f"{name}={value}" for name, value in self.params)
        return f"{self.provider}:{self.resource}:{query}"

    def __str__(self) -> str:
        return self.serialize()


@dataclass
class CacheEntry:
    key: CacheKey
    value: Any
    stored_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    deduplicated: int = 0
    stale_served: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses + self.deduplicated
        if total == 0:
            return 0.0
        return (self.hits + self.deduplicated) / total

    def __repr__(self) -> str:
        return (
            f"CacheStats(hits={self.hits}, misses={self.misses}, "
            f"dedup={self.deduplicated}, stale={self.stale_served}, "
            f"hit_rate={self.hit_rate:.0%})"
        )


def _retrieve_exception(task: asyncio.Future) -> None:
    # The fill may outlive every caller that awaited it; mark its error as seen.
    if not task.cancelled():
        task.exception()


def _require_key(key: object) -> CacheKey:
    if not isinstance(key, CacheKey):
        raise TypeError(f"cache keys must be CacheKey instances, got {type(key).__name__}")
    return key


class AsyncCache:
    """TTL cache shared by every consumer of provider data."""

    def __init__(
        self,
        max_entries: int = 200,
        serve_stale: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.serve_stale = serve_stale
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Future] = {}
        self._stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> CacheStats:
        return CacheStats(**vars(self._stats))

    def get(self, key: CacheKey) -> Any | None:
        """Return the cached value if it is still fresh, else ``None``."""
        entry = self._entries.get(_require_key(key).serialize())
        if entry is None or not entry.is_fresh(self._clock()):
            return None
        return entry.value

    def set(self, key: CacheKey, value: Any, ttl: float) -> None:
        self._store(_require_key(key), value, ttl)

    async def get_or_fetch(
        self,
        key: CacheKey,
        ttl: float,
        fetch: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return a fresh cached value or fill it with a single ``fetch()``.

        Concurrent callers for the same key all await the same fill. If
        the fill fails with a provider error or a timeout and an expired
        entry exists, that entry is served instead.
        """
        name = _require_key(key).serialize()
        entry = self._entries.get(name)
        if entry is not None and entry.is_fresh(self._clock()):
            self._stats.hits += 1
            logger.debug("cache hit %s", name)
            return entry.value

        task = self._inflight.get(name)
        if task is None:
            self._stats.misses += 1
            logger.debug("cache miss %s", name)
            task = asyncio.ensure_future(self._fill(key, ttl, fetch))
            task.add_done_callback(_retrieve_exception)
            self._inflight[name] = task
        else:
            self._stats.deduplicated += 1
            logger.debug("joining in-flight fetch %s", name)

        # A caller that gives up must not cancel the fill the others await.
        return await asyncio.shield(task)

    async def _fill(
        self,
        key: CacheKey,
        ttl: float,
        fetch: Callable[[], Awaitable[Any]],
    ) -> Any:
        name = key.serialize()
        try:
            value = await fetch()
        except (ProviderError, asyncio.TimeoutError) as exc:
            stale = self._entries.get(name)
            if self.serve_stale and stale is not None:
                self._stats.stale_served += 1
                logger.warning(
                    "serving stale %s (age %.0fs) after fetch failure: %s",
                    name, self._clock() - stale.stored_at, exc,
                )
                return stale.value
            raise
        finally:
            self._inflight.pop(name, None)

        self._store(key, value, ttl)
        return value

    def _store(self, key: CacheKey, value: Any, ttl: float) -> None:
        name = key.serialize()
        self._entries[name] = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl=ttl)
        if len(self._entries) > self.max_entries:
            self._evict()

    def _evict(self) -> None:
        count = max(1, self.max_entries // 4)
        oldest = sorted(self._entries.values(), key=lambda e: e.stored_at)[:count]
        for entry in oldest:
            del self._entries[entry.key.serialize()]
        logger.debug("evicted %d cache entries", len(oldest))

    def invalidate(self, pattern: CacheKey | str) -> int:
        """Drop entries matching an exact key or a glob over serialised keys.

        Returns the number of entries removed.
        """
        if isinstance(pattern, CacheKey):
            removed = 1 if self._entries.pop(pattern.serialize(), None) is not None else 0
        else:
            names = [name for name in self._entries if fnmatchcase(name, pattern)]
            for name in names:
                del self._entries[name]
            removed = len(names)
        if removed:
            logger.debug("invalidated %d entries for %s", removed, pattern)
        return removed

    def clear(self) -> None:
        self._entries.clear()
