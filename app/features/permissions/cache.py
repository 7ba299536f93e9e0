"""
Time-bounded, process-local cache of role grants and user overrides.

An entry moves absent -> valid -> absent, either when its TTL runs out or
when a write to its scope invalidates it. Invalidation never repopulates;
the next resolution reloads from the store.
"""
import time
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from app.utils import get_logger


log = get_logger(__name__)

T = TypeVar("T")


class CacheScope(str, Enum):
    ROLE = "role"
    USER = "user"


@dataclass
class CacheEntry:
    scope: CacheScope
    scope_id: str
    value: Any
    expires_at: float


class PermissionCache:
    """
    Read-through cache keyed by (scope, scope id).

    Each scope key carries a generation counter bumped by invalidate() and
    clear(). A load that was already running when its scope was invalidated
    returns its value to its own caller but does not store it, so a
    resolution issued after a write always reloads.

    Generations are only kept while a load for that key is in flight, and
    expired entries are swept at most once per TTL, so memory follows the
    number of live entries rather than every scope ever seen.
    """

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        if ttl < 0:
            raise ValueError("Cache TTL must not be negative")
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[tuple[CacheScope, str], CacheEntry] = {}
        self._generations: dict[tuple[CacheScope, str], int] = {}
        self._in_flight: Counter[tuple[CacheScope, str]] = Counter()
        self._epoch = 0
        self._next_sweep = clock() + ttl

    def peek(self, scope: CacheScope, scope_id: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        entry = self._entries.get((scope, scope_id))
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[(scope, scope_id)]
            return None
        return entry.value

    async def get_or_load(self, scope: CacheScope, scope_id: str, loader: Callable[[], Awaitable[T]]) -> T:
        cached = self.peek(scope, scope_id)
        if cached is not None:
            return cached

        self._sweep()
        cache_key = (scope, scope_id)
        generation = self._generation(cache_key)
        self._in_flight[cache_key] += 1
        try:
            value = await loader()
        finally:
            stale = self._generation(cache_key) != generation
            self._in_flight[cache_key] -= 1
            if self._in_flight[cache_key] <= 0:
                del self._in_flight[cache_key]
                self._generations.pop(cache_key, None)

        if stale:
            log.debug(f"Discarding {scope.value}:{scope_id} load that raced an invalidation")
        else:
            self._entries[cache_key] = CacheEntry(scope, scope_id, value, self._clock() + self.ttl)
        return value

    def invalidate(self, scope: CacheScope, scope_id: str) -> None:
        cache_key = (scope, scope_id)
        self._entries.pop(cache_key, None)
        # Only a running load can observe the bump
        if cache_key in self._in_flight:
            self._generations[cache_key] = self._generations.get(cache_key, 0) + 1
        log.debug(f"Invalidated permission cache for {scope.value}:{scope_id}")

    def clear(self) -> None:
        self._entries.clear()
        self._generations.clear()
        self._epoch += 1
        log.info("Permission cache cleared")

    def _sweep(self) -> None:
        now = self._clock()
        if now < self._next_sweep:
            return
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self.ttl
        if expired:
            log.debug(f"Swept {len(expired)} expired permission cache entries")

    def _generation(self, cache_key: tuple[CacheScope, str]) -> tuple[int, int]:
        return self._epoch, self._generations.get(cache_key, 0)

    def __len__(self) -> int:
        return len(self._entries)
