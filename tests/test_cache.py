"""Tests for the TTL cache."""

from __future__ import annotations

import pytest

from extragrid.cache import CacheEntry, TTLCache
from tests.fakes import FakeClock


class TestExpiry:
    """Tests for lazy TTL expiry."""

    def test_fresh_within_ttl(self) -> None:
        clock = FakeClock()
        cache: TTLCache[str] = TTLCache(60, clock=clock)
        cache.set("k", "v")
        clock.advance(59.9)
        assert cache.get("k") == "v"

    def test_stale_at_ttl(self) -> None:
        """An entry is fresh only while now - created_at < ttl."""
        clock = FakeClock()
        cache: TTLCache[str] = TTLCache(60, clock=clock)
        cache.set("k", "v")
        clock.advance(60)
        assert cache.get("k") is None

    def test_stale_entry_dropped_on_read(self) -> None:
        clock = FakeClock()
        cache: TTLCache[str] = TTLCache(10, clock=clock)
        cache.set("k", "v")
        clock.advance(11)
        assert len(cache) == 1
        cache.get("k")
        assert len(cache) == 0

    def test_is_fresh(self) -> None:
        clock = FakeClock(100.0)
        cache: TTLCache[int] = TTLCache(5, clock=clock)
        assert cache.is_fresh(CacheEntry("k", 1, created_at=96.0))
        assert not cache.is_fresh(CacheEntry("k", 1, created_at=95.0))
        assert not cache.is_fresh(None)

    def test_set_refreshes_timestamp(self) -> None:
        clock = FakeClock()
        cache: TTLCache[str] = TTLCache(10, clock=clock)
        cache.set("k", "old")
        clock.advance(8)
        cache.set("k", "new")
        clock.advance(8)
        assert cache.get("k") == "new"

    def test_contains_respects_ttl(self) -> None:
        clock = FakeClock()
        cache: TTLCache[str] = TTLCache(10, clock=clock)
        cache.set("k", "v")
        assert "k" in cache
        clock.advance(10)
        assert "k" not in cache

    def test_invalid_ttl(self) -> None:
        with pytest.raises(ValueError):
            TTLCache(0)


class TestInvalidation:
    """Tests for explicit invalidation."""

    def test_invalidate(self) -> None:
        cache: TTLCache[str] = TTLCache(60)
        cache.set("a", "1")
        cache.invalidate("a")
        cache.invalidate("missing")
        assert cache.get("a") is None

    def test_invalidate_prefix(self) -> None:
        cache: TTLCache[str] = TTLCache(60)
        cache.set("search:d1:i1:entire_sheet", "x")
        cache.set("search:d1:i1:all_sheets", "y")
        cache.set("search:d1:i2:all_sheets", "z")
        assert cache.invalidate_prefix("search:d1:i1:") == 2
        assert cache.get("search:d1:i2:all_sheets") == "z"

    def test_clear(self) -> None:
        cache: TTLCache[str] = TTLCache(60)
        cache.set("a", "1")
        cache.set("b", "2")
        cache.clear()
        assert len(cache) == 0


class TestBoundAndStats:
    """Tests for the LRU bound and statistics."""

    def test_evicts_least_recently_used(self) -> None:
        cache: TTLCache[int] = TTLCache(60, max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3

    def test_stats_counts_hits_and_misses(self) -> None:
        cache: TTLCache[int] = TTLCache(30, max_entries=5)
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")
        stats = cache.stats()
        assert stats == {
            "entries": 1,
            "ttl_seconds": 30,
            "max_entries": 5,
            "hits": 1,
            "misses": 1,
        }

    def test_invalid_max_entries(self) -> None:
        with pytest.raises(ValueError):
            TTLCache(10, max_entries=0)
