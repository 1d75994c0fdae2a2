"""Generic time-indexed cache.

Entries carry an absolute expiry; reads never return an expired value.
A min-heap of expiries lets ``sweep()`` drop stale entries without
scanning the whole map. The cache does not run its own thread: whoever
owns it (the service container) schedules ``sweep`` and cancels it on
shutdown.
"""

import heapq
import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from logistics.utils.time import Clock, utc_now

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    value: V
    expires_at: datetime


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    expirations: int = 0

    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class TTLCache(Generic[K, V]):
    def __init__(self, ttl: timedelta, clock: Clock = utc_now, name: str = "cache"):
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._entries: dict[K, CacheEntry[V]] = {}
        self._expiry_heap: list[tuple[datetime, int, K]] = []
        self._counter = 0  # tie-breaker so keys are never compared
        self._lock = threading.RLock()
        self.stats = CacheStats()

    def get(self, key: K) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                self.stats.expirations += 1
                self.stats.misses += 1
                return None
            self.stats.hits += 1
            return entry.value

    def set(self, key: K, value: V, ttl: timedelta | None = None) -> None:
        expires_at = self._clock() + (self.ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=expires_at)
            self._counter += 1
            heapq.heappush(self._expiry_heap, (expires_at, self._counter, key))

    def get_or_compute(self, key: K, factory: Callable[[], V]) -> V:
        """Return the cached value, computing and storing it on a miss.

        ``factory`` runs outside the lock; two concurrent misses may both
        compute, the later write wins.
        """
        value = self.get(key)
        if value is None:
            value = factory()
            self.set(key, value)
        return value

    def invalidate(self, key: K) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._expiry_heap.clear()

    def sweep(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        removed = 0
        with self._lock:
            while self._expiry_heap and self._expiry_heap[0][0] <= now:
                expires_at, _, key = heapq.heappop(self._expiry_heap)
                entry = self._entries.get(key)
                # A later set() may have refreshed the key; its own heap node handles it
                if entry is not None and entry.expires_at == expires_at:
                    del self._entries[key]
                    removed += 1
            self.stats.expirations += removed
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: K) -> bool:
        return self.get(key) is not None
