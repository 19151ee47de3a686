"""Tests for the tiered in-process cache."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from wavebridge_api.modules.catalog.cache import CACHE_TTL_CONFIG, CacheCategory, CacheEntry, TieredCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Return a controllable clock."""
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Return a small cache driven by the fake clock."""
    return TieredCache(max_size=3, hot_threshold=5, sweep_interval=60, clock=clock)


class TestTtlTable:
    """Tests for the category TTL table."""

    def test_minutes_per_category(self):
        """Test the configured lifetimes."""
        minutes = {category: ttl / 60 for category, ttl in CACHE_TTL_CONFIG.items()}
        assert minutes == {
            CacheCategory.SONG_INFO: 30,
            CacheCategory.ALBUM_COVER: 60,
            CacheCategory.LYRICS: 60,
            CacheCategory.ARTIST_INFO: 30,
            CacheCategory.ALBUM_INFO: 30,
            CacheCategory.PLAYLIST: 15,
            CacheCategory.SEARCH: 10,
            CacheCategory.TOP_SONGS: 15,
            CacheCategory.SONG_URL: 5,
            CacheCategory.COMMENTS: 5,
            CacheCategory.HOT_PLAYLISTS: 10,
            CacheCategory.DEFAULT: 5,
        }


class TestGetSet:
    """Tests for lookups and expiry."""

    def test_round_trip_before_and_after_ttl(self, cache, clock):
        """Test that a value is served until its TTL elapses."""
        cache.set("k", "v", CacheCategory.SEARCH)
        clock.advance(599)
        assert cache.get("k") == "v"

        clock.advance(2)
        assert cache.get("k") is None
        assert "k" not in cache._entries

    def test_custom_ttl(self, cache, clock):
        """Test that a per-entry TTL overrides the category."""
        cache.set("k", "v", CacheCategory.LYRICS, custom_ttl=10)
        clock.advance(11)
        assert cache.get("k") is None

    def test_set_replaces_and_resets_hits(self, cache):
        """Test that set replaces an existing entry with a fresh one."""
        cache.set("k", "old")
        cache.get("k")
        cache.set("k", "new")
        assert cache._entries["k"].hits == 0
        assert cache.get("k") == "new"

    def test_miss_counts(self, cache):
        """Test that hits and misses feed the hit rate."""
        cache.set("k", "v")
        cache.get("k")
        cache.get("missing")
        stats = cache.get_stats()
        assert (stats.hits, stats.misses, stats.hit_rate) == (1, 1, 0.5)

    def test_entry_is_immutable(self, cache):
        """Test that lookups replace entries instead of mutating them."""
        cache.set("k", "v")
        before = cache._entries["k"]
        cache.get("k")
        assert before.hits == 0
        assert cache._entries["k"].hits == 1

    def test_lookup_moves_entry_to_most_recent(self, cache):
        """Test the LRU reordering on access."""
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        assert list(cache._entries) == ["b", "a"]


class TestHotPromotion:
    """Tests for hit-based TTL extension."""

    def test_promoted_once_at_threshold(self, cache):
        """Test that the fifth hit sets a 1.5x TTL override."""
        cache.set("k", "v", CacheCategory.SEARCH)
        for _ in range(4):
            cache.get("k")
        assert cache._entries["k"].custom_ttl is None

        cache.get("k")
        assert cache._entries["k"].custom_ttl == CACHE_TTL_CONFIG[CacheCategory.SEARCH] * 1.5

    def test_existing_override_is_kept(self, cache):
        """Test that a caller-supplied TTL is never replaced."""
        cache.set("k", "v", custom_ttl=42)
        for _ in range(6):
            cache.get("k")
        assert cache._entries["k"].custom_ttl == 42

    def test_every_third_hit_refreshes_timestamp(self, cache, clock):
        """Test that freshness is extended without resetting hits."""
        cache.set("k", "v")
        created = cache._entries["k"].timestamp

        clock.advance(10)
        cache.get("k")
        cache.get("k")
        assert cache._entries["k"].timestamp == created

        cache.get("k")
        assert cache._entries["k"].timestamp == created + 10
        assert cache._entries["k"].hits == 3


class TestEviction:
    """Tests for scored eviction."""

    def test_score(self):
        """Test hits weighted by remaining life."""
        entry = CacheEntry(value=1, timestamp=0.0, category=CacheCategory.DEFAULT, hits=4)
        assert entry.score(150.0) == pytest.approx(2.0)
        assert entry.score(400.0) == 0.0

    def test_evicts_lowest_pre_existing_entry(self, cache):
        """Test that inserting max_size + 1 keys evicts the least valuable old entry."""
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.get("a")
        cache.get("c")

        cache.set("d", 4)

        assert set(cache._entries) == {"a", "c", "d"}

    def test_ties_go_to_oldest(self, cache):
        """Test that equal scores evict in iteration order."""
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.evict_least_valuable() == "a"

    def test_expired_entries_score_zero(self, cache, clock):
        """Test that an expired hot entry loses to a fresh one."""
        cache.set("old", 1, custom_ttl=5)
        for _ in range(3):
            cache.get("old")
        cache.set("fresh", 2)
        cache.get("fresh")
        clock.advance(6)
        assert cache.evict_least_valuable() == "old"

    def test_empty_cache(self, cache):
        """Test eviction on an empty cache."""
        assert cache.evict_least_valuable() is None


class TestSweep:
    """Tests for purging and background sweeping."""

    def test_clear_expired(self, cache, clock):
        """Test that only expired entries are removed."""
        cache.set("short", 1, CacheCategory.SONG_URL)
        cache.set("long", 2, CacheCategory.LYRICS)
        clock.advance(301)
        assert cache.clear_expired() == 1
        assert set(cache._entries) == {"long"}

    @pytest.mark.asyncio
    async def test_sweeper_lifecycle(self, clock):
        """Test that the sweeper purges periodically and stops cleanly."""
        cache = TieredCache(sweep_interval=0.01, clock=clock)
        cache.set("k", 1, CacheCategory.SONG_URL)
        clock.advance(301)

        cache.start_sweeper()
        await asyncio.sleep(0.05)
        assert len(cache) == 0

        await cache.stop_sweeper()
        assert cache._sweeper is None


class TestHelpers:
    """Tests for warmup and stats."""

    @pytest.mark.asyncio
    async def test_warmup_tolerates_failure(self, cache):
        """Test that a failing preload is reported, not raised."""
        assert await cache.warmup(AsyncMock(side_effect=RuntimeError("offline"))) is False
        assert await cache.warmup(AsyncMock(return_value=None)) is True

    def test_stats_by_category(self, cache):
        """Test the per-category breakdown."""
        cache.set("a", 1, CacheCategory.SEARCH)
        cache.set("b", 2, CacheCategory.SEARCH)
        cache.set("c", 3, CacheCategory.LYRICS)
        cache.get("a")
        stats = cache.get_stats()
        assert stats.total == 3
        assert stats.by_category == {"search": 2, "lyrics": 1}
        assert stats.avg_hits == pytest.approx(1 / 3)

    def test_clear(self, cache):
        """Test that clear empties entries and counters."""
        cache.set("a", 1)
        cache.get("a")
        cache.clear()
        assert len(cache) == 0
        assert cache.get_stats().hits == 0
