"""TTL and size bounded in-process cache.

Used for the alert debounce window and the per-device reading counter
that gates sampled history writes. Entries are advisory: losing the
cache (process restart, eviction) must never change correctness.
"""

import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value with its insertion time (clock seconds)."""

    key: str
    value: V
    inserted_at: float


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache statistics."""

    size: int
    max_size: int
    ttl_seconds: float
    oldest_entry: float | None
    newest_entry: float | None


class TTLCache(Generic[V]):
    """Bounded string-keyed map with TTL expiry and oldest-first eviction.

    Args:
        ttl_seconds: Entry lifetime. ``get`` returns ``None`` once
            ``now - inserted_at`` exceeds it.
        max_size: Capacity. Inserting a new key at capacity evicts the
            entry with the oldest insertion time.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, entry: CacheEntry[V], now: float) -> bool:
        return now - entry.inserted_at > self._ttl

    def set(self, key: str, value: V) -> None:
        """Insert or replace ``key``, purging expired entries first."""
        now = self._clock()
        self.purge_expired(now)

        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self._max_size:
            oldest = min(self._entries.values(), key=lambda e: e.inserted_at)
            del self._entries[oldest.key]

        self._entries[key] = CacheEntry(key=key, value=value, inserted_at=now)

    def get(self, key: str) -> V | None:
        """Return the live value for ``key`` or ``None`` (dropping it if expired)."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry, self._clock()):
            del self._entries[key]
            return None
        return entry.value

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self, now: float | None = None) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock() if now is None else now
        expired = [k for k, e in self._entries.items() if self._expired(e, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> CacheStats:
        """Return size/capacity and the oldest/newest insertion times."""
        times = [e.inserted_at for e in self._entries.values()]
        return CacheStats(
            size=len(self._entries),
            max_size=self._max_size,
            ttl_seconds=self._ttl,
            oldest_entry=min(times) if times else None,
            newest_entry=max(times) if times else None,
        )
