"""Time-bounded memoization for resolution, search and suggestion lookups.

Expiry is lazy: an entry is only checked (and dropped) when it is read.
Concurrent misses on the same key both do the underlying work; the last
``set`` wins.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

V = TypeVar("V")

Clock = Callable[[], float]

# Observed TTLs, in seconds
RESOLUTION_TTL = 10 * 60
SUGGESTION_TTL = 5 * 60
SEARCH_TTL = 2 * 60


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value and the clock reading at which it was stored."""

    key: str
    value: V
    created_at: float


class TTLCache(Generic[V]):
    """Expiring key->value store with a fixed per-instance TTL.

    Args:
        ttl: Seconds an entry stays fresh.
        clock: Returns the current time in seconds. Defaults to
            ``time.monotonic``; tests pass a controllable clock.
        max_entries: Optional bound. When exceeded, the least recently
            used entry is evicted.
    """

    def __init__(
        self,
        ttl: float,
        *,
        clock: Clock | None = None,
        max_entries: int | None = None,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def is_fresh(self, entry: CacheEntry[V] | None) -> bool:
        """Check whether an entry is still within its TTL."""
        if entry is None:
            return False
        return self._clock() - entry.created_at < self.ttl

    def get(self, key: str) -> V | None:
        """Return the cached value, or None on a miss or stale entry."""
        entry = self._entries.get(key)
        if entry is None or not self.is_fresh(entry):
            if entry is not None:
                del self._entries[key]
            self._misses += 1
            return None
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.value

    def set(self, key: str, value: V) -> None:
        self._entries[key] = CacheEntry(key=key, value=value, created_at=self._clock())
        self._entries.move_to_end(key)
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``.

        Returns:
            Number of entries removed.
        """
        stale = [k for k in self._entries if k.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, Any]:
        return {
            "entries": len(self._entries),
            "ttl_seconds": self.ttl,
            "max_entries": self._max_entries,
            "hits": self._hits,
            "misses": self._misses,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return self.is_fresh(self._entries.get(key))
