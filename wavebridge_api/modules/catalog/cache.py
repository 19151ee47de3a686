"""In-process tiered cache for catalog responses.

Entries belong to a category that determines their TTL. Frequently read
entries get a longer lifetime, and when the cache is full the entry with the
lowest ``hits * remaining_ttl / ttl`` score is evicted.
"""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from enum import Enum
from logging import Logger
from typing import Any

from pydantic import BaseModel, ConfigDict

from wavebridge_api.core.logger import get_logger
from wavebridge_api.modules.catalog.schemas import CacheStats

# Initialize logger
logger: Logger = get_logger(module_name="modules.catalog.cache")

MINUTE = 60.0


class CacheCategory(str, Enum):
    """Kinds of cached data, each with its own TTL."""

    SONG_INFO = "song_info"
    ALBUM_COVER = "album_cover"
    LYRICS = "lyrics"
    ARTIST_INFO = "artist_info"
    ALBUM_INFO = "album_info"
    PLAYLIST = "playlist"
    SEARCH = "search"
    TOP_SONGS = "top_songs"
    SONG_URL = "song_url"
    COMMENTS = "comments"
    HOT_PLAYLISTS = "hot_playlists"
    DEFAULT = "default"


# TTL settings (in seconds)
CACHE_TTL_CONFIG: dict[CacheCategory, float] = {
    CacheCategory.SONG_INFO: 30 * MINUTE,
    CacheCategory.ALBUM_COVER: 60 * MINUTE,
    CacheCategory.LYRICS: 60 * MINUTE,
    CacheCategory.ARTIST_INFO: 30 * MINUTE,
    CacheCategory.ALBUM_INFO: 30 * MINUTE,
    CacheCategory.PLAYLIST: 15 * MINUTE,
    CacheCategory.SEARCH: 10 * MINUTE,
    CacheCategory.TOP_SONGS: 15 * MINUTE,
    CacheCategory.SONG_URL: 5 * MINUTE,
    CacheCategory.COMMENTS: 5 * MINUTE,
    CacheCategory.HOT_PLAYLISTS: 10 * MINUTE,
    CacheCategory.DEFAULT: 5 * MINUTE,
}

HOT_TTL_MULTIPLIER = 1.5
TIMESTAMP_REFRESH_EVERY = 3


class CacheEntry(BaseModel):
    """Immutable cached value with its bookkeeping."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    value: Any
    timestamp: float
    category: CacheCategory = CacheCategory.DEFAULT
    hits: int = 0
    custom_ttl: float | None = None

    @property
    def ttl(self) -> float:
        """Effective lifetime in seconds."""
        return self.custom_ttl if self.custom_ttl is not None else CACHE_TTL_CONFIG[self.category]

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl

    def score(self, now: float) -> float:
        """Eviction value: read frequency weighted by remaining freshness."""
        remaining = max(self.ttl - (now - self.timestamp), 0.0)
        return self.hits * (remaining / self.ttl) if self.ttl > 0 else 0.0


class TieredCache:
    """Bounded LRU cache with per-category TTLs and hot-entry promotion."""

    def __init__(
        self,
        max_size: int = 150,
        hot_threshold: int = 5,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            max_size: Maximum number of entries
            hot_threshold: Hit count after which an entry's TTL is extended
            sweep_interval: Seconds between background purges of expired entries
            clock: Monotonic time source in seconds
        """
        self.max_size = max_size
        self.hot_threshold = hot_threshold
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def size(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        """Return a fresh cached value or None.

        A hit bumps the hit counter, promotes the entry to a 1.5x TTL once it
        reaches the hot threshold, refreshes its timestamp every third hit
        and moves it to the most recently used position.

        Args:
            key: Cache key

        Returns:
            Cached value, or None on a miss or an expired entry
        """
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._entries[key]
            self._misses += 1
            return None

        hits = entry.hits + 1
        custom_ttl = entry.custom_ttl
        if hits >= self.hot_threshold and custom_ttl is None:
            custom_ttl = CACHE_TTL_CONFIG[entry.category] * HOT_TTL_MULTIPLIER
            logger.debug("Promoting hot cache entry %s to %.0fs TTL", key, custom_ttl)
        timestamp = now if hits % TIMESTAMP_REFRESH_EVERY == 0 else entry.timestamp

        self._entries[key] = entry.model_copy(update={"hits": hits, "custom_ttl": custom_ttl, "timestamp": timestamp})
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.value

    def set(
        self,
        key: str,
        value: Any,
        category: CacheCategory = CacheCategory.DEFAULT,
        custom_ttl: float | None = None,
    ) -> None:
        """Store a value, evicting the least valuable entry when full.

        Args:
            key: Cache key
            value: Value to cache
            category: Category determining the TTL
            custom_ttl: Optional TTL override in seconds
        """
        self._entries.pop(key, None)
        if len(self._entries) >= self.max_size:
            self.evict_least_valuable()
        self._entries[key] = CacheEntry(
            value=value,
            timestamp=self._clock(),
            category=category,
            custom_ttl=custom_ttl,
        )

    def delete(self, key: str) -> bool:
        """Remove a key, returning whether it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def evict_least_valuable(self) -> str | None:
        """Evict the entry with the lowest score; ties go to the oldest.

        Returns:
            The evicted key, or None when the cache is empty
        """
        now = self._clock()
        victim: str | None = None
        lowest = float("inf")
        for key, entry in self._entries.items():
            score = entry.score(now)
            if score < lowest:
                lowest = score
                victim = key
        if victim is not None:
            del self._entries[victim]
            logger.debug("Evicted cache entry %s (score %.3f)", victim, lowest)
        return victim

    def clear_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Cleared %d expired cache entries", len(expired))
        return len(expired)

    def get_stats(self) -> CacheStats:
        """Return a snapshot of cache usage."""
        by_category: dict[str, int] = {}
        total_hits = 0
        for entry in self._entries.values():
            by_category[entry.category.value] = by_category.get(entry.category.value, 0) + 1
            total_hits += entry.hits

        lookups = self._hits + self._misses
        return CacheStats(
            total=len(self._entries),
            by_category=by_category,
            avg_hits=total_hits / len(self._entries) if self._entries else 0.0,
            hit_rate=self._hits / lookups if lookups else 0.0,
            hits=self._hits,
            misses=self._misses,
        )

    async def warmup(self, preload: Callable[[], Awaitable[Any]]) -> bool:
        """Run a best-effort preload that fills the cache.

        Args:
            preload: Coroutine function issuing the catalog calls to warm

        Returns:
            True when the preload completed, False when it failed
        """
        logger.info("Starting cache warmup")
        try:
            await preload()
        except Exception:
            logger.warning("Cache warmup failed, continuing with a cold cache", exc_info=True)
            return False
        logger.info("Cache warmup finished with %d entries", len(self._entries))
        return True

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.clear_expired()

    def start_sweeper(self) -> None:
        """Start the periodic purge of expired entries on the running loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
            logger.debug("Cache sweeper started with %.0fs interval", self.sweep_interval)

    async def stop_sweeper(self) -> None:
        """Cancel the periodic purge and wait for it to finish."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.debug("Cache sweeper stopped")
