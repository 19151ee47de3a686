"""Catalog operations built on the resilience layer.

Every operation follows the same path: build a cache key, check the tiered
cache, coalesce concurrent identical calls, then run the request against the
active backend. A failed request triggers one failover to the next healthy
backend and a single retry before the error reaches the caller.
"""

import re
from collections.abc import Awaitable, Callable
from logging import Logger
from typing import Any, TypeAlias, TypeVar

from wavebridge_api.core.logger import get_logger
from wavebridge_api.modules.catalog.cache import CacheCategory, TieredCache
from wavebridge_api.modules.catalog.constants import (
    BUILT_IN_TOPLIST,
    COVER_SIZES,
    DEFAULT_COVER,
    DEFAULT_COVER_SIZE,
    ERROR_MESSAGES,
    PLAYLIST_ID_PATTERNS,
    PLAYLIST_URL_HOSTS,
    PRIMARY_PLATFORM,
    SIMILAR_SEARCH_KEYWORD,
    TOP_LIST_IDS,
    TOP_SEARCH_DEFAULT_KEYWORD,
    TOP_SEARCH_KEYWORDS,
)
from wavebridge_api.modules.catalog.dedup import RequestDeduplicator
from wavebridge_api.modules.catalog.dialects import ApiRequest, Dialect, get_dialect, to_songs
from wavebridge_api.modules.catalog.errors import ApiError, ApiErrorKind
from wavebridge_api.modules.catalog.executor import RetryingExecutor, parse_json_response
from wavebridge_api.modules.catalog.resolver import StreamResolver
from wavebridge_api.modules.catalog.schemas import (
    AlbumInfo,
    AlbumSummary,
    ApiStats,
    ArtistInfo,
    ArtistListResult,
    ArtistSummary,
    ArtistTopSongs,
    CommentsResult,
    HotPlaylistsResult,
    LyricResult,
    PlaylistResult,
    Song,
    SongUrlResult,
    ToplistEntry,
    ToplistResult,
)
from wavebridge_api.modules.catalog.sources import SourceRegistry

# Initialize module logger
logger: Logger = get_logger("modules.catalog.service")

T = TypeVar("T")

# An operation receives the dialect and base URL of the backend it runs against
Operation: TypeAlias = Callable[[Dialect, str], Awaitable[T]]


def pick_cover_size(size: int | None) -> int:
    """Round a requested cover size up to the nearest supported bucket."""
    if not size:
        return DEFAULT_COVER_SIZE
    return next((bucket for bucket in COVER_SIZES if size <= bucket), COVER_SIZES[-1])


def extract_playlist_id(value: str, source: str = PRIMARY_PLATFORM) -> str:
    """Extract a playlist id from a raw id or a share URL.

    Args:
        value: Playlist id or platform URL
        source: Platform the playlist belongs to

    Returns:
        Playlist id

    Raises:
        ValueError: If a platform URL carries no recognizable id
    """
    playlist_id = value.strip()
    hosts = PLAYLIST_URL_HOSTS.get(source, ())
    if not any(host in playlist_id for host in hosts):
        return playlist_id

    for pattern in PLAYLIST_ID_PATTERNS[source]:
        match = re.search(pattern, playlist_id)
        if match:
            return match.group(1)
    raise ValueError(ERROR_MESSAGES["PLAYLIST_ID_NOT_FOUND"])


class CatalogService:
    """Search, playlist, lyrics, chart, artist and album operations."""

    def __init__(
        self,
        registry: SourceRegistry,
        executor: RetryingExecutor,
        cache: TieredCache,
        deduplicator: RequestDeduplicator,
        resolver: StreamResolver,
    ) -> None:
        """Initialize the service.

        Args:
            registry: Source registry owning the active backend
            executor: Retrying request executor
            cache: Tiered response cache
            deduplicator: In-flight request deduplicator
            resolver: Stream URL resolver
        """
        self._registry = registry
        self._executor = executor
        self._cache = cache
        self._deduplicator = deduplicator
        self._resolver = resolver

    async def _get_json(self, request: ApiRequest, max_retries: int | None = None) -> Any:
        response = await self._executor.execute(request.url, {"params": request.params}, max_retries=max_retries)
        return parse_json_response(response)

    async def _with_failover(self, name: str, operation: Operation[T]) -> T:
        """Run an operation, failing over once to the next healthy backend.

        The dialect is detected for every attempt because the active backend
        may change between calls.

        Raises:
            ApiError: When the retry on the new backend fails too, or no
                other backend responds
        """
        base_url = self._registry.active_url
        try:
            return await operation(get_dialect(base_url), base_url)
        except ApiError as e:
            logger.warning("%s failed on %s: %s, trying next source", name, base_url, e.message)
            if not await self._registry.switch_to_next():
                raise

        base_url = self._registry.active_url
        return await operation(get_dialect(base_url), base_url)

    async def _cached(
        self,
        key: str,
        category: CacheCategory,
        operation: Operation[T],
        cache_empty: bool = True,
    ) -> T:
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        async def fetch() -> T:
            value = await self._with_failover(key, operation)
            if cache_empty or value:
                self._cache.set(key, value, category)
            return value

        return await self._deduplicator.dedupe(key, fetch)

    # Search and playlists

    async def _search_once(self, keyword: str, source: str, limit: int) -> list[Song]:
        async def operation(dialect: Dialect, base_url: str) -> list[Song]:
            data = await self._get_json(dialect.search(base_url, keyword, source, limit))
            return to_songs(dialect.decode_songs(data), source, require_name=True)

        key = f"search_{source}_{keyword}_{limit}"
        return await self._cached(key, CacheCategory.SEARCH, operation, cache_empty=False)

    async def search(self, keyword: str, source: str = PRIMARY_PLATFORM, limit: int = 100) -> list[Song]:
        """Search tracks by keyword.

        An empty result from a platform other than NetEase is retried once
        against NetEase.

        Args:
            keyword: Search keyword
            source: Platform to search
            limit: Maximum number of results

        Returns:
            Matching songs, possibly empty
        """
        chain = [source] if source == PRIMARY_PLATFORM else [source, PRIMARY_PLATFORM]
        for platform in chain:
            songs = await self._search_once(keyword, platform, limit)
            if songs:
                return songs
            logger.info("Search for %r on %s returned nothing", keyword, platform)
        return []

    async def parse_playlist(self, playlist: str, source: str = PRIMARY_PLATFORM) -> PlaylistResult:
        """Load a playlist from its id or share URL.

        Args:
            playlist: Playlist id or NetEase/QQ Music URL
            source: Platform the playlist belongs to

        Returns:
            Playlist name and tracks

        Raises:
            ValueError: If the URL carries no playlist id
            ApiError: If the playlist cannot be loaded or is empty
        """
        playlist_id = extract_playlist_id(playlist, source)

        async def operation(dialect: Dialect, base_url: str) -> PlaylistResult:
            data = await self._get_json(dialect.playlist(base_url, playlist_id, source))
            tracks, name = dialect.decode_playlist(data)
            songs = to_songs(tracks, source, require_id=True, require_name=True)
            if not songs:
                raise ApiError(ApiErrorKind.PARSE, ERROR_MESSAGES["EMPTY_PLAYLIST"])
            return PlaylistResult(songs=songs, name=name or "未命名歌单", count=len(songs))

        return await self._cached(f"playlist_{source}_{playlist_id}", CacheCategory.PLAYLIST, operation)

    async def get_lyrics(self, song: Song) -> LyricResult:
        """Fetch the lyrics of a song, an empty lyric when there are none."""

        async def operation(dialect: Dialect, base_url: str) -> LyricResult:
            data = await self._get_json(dialect.lyric(base_url, song), max_retries=1)
            return LyricResult(lyric=dialect.decode_lyric(data))

        return await self._cached(f"lyric_{song.source}_{song.lyric_id or song.id}", CacheCategory.LYRICS, operation)

    # Charts

    async def get_top_songs(self, category: str = "hot", source: str = PRIMARY_PLATFORM, limit: int = 50) -> list[Song]:
        """Fetch a chart.

        Backends without a chart endpoint serve charts through a keyword
        search.

        Args:
            category: Chart name (hot, new, original, soar, electronic)
            source: Platform of the chart
            limit: Maximum number of tracks
        """
        list_id = TOP_LIST_IDS.get(category, TOP_LIST_IDS["hot"])

        async def operation(dialect: Dialect, base_url: str) -> list[Song] | None:
            request = dialect.top_list(base_url, category, list_id)
            if request is None:
                return None
            data = await self._get_json(request)
            return to_songs(dialect.decode_top_list(data), source, require_id=True, limit=limit)

        key = f"top_{source}_{category}_{limit}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        songs = await self._deduplicator.dedupe(key, lambda: self._with_failover(key, operation))
        if songs is None:
            keyword = TOP_SEARCH_KEYWORDS.get(category, TOP_SEARCH_DEFAULT_KEYWORD)
            return await self.search(keyword, source, limit)
        self._cache.set(key, songs, CacheCategory.TOP_SONGS)
        return songs

    async def get_all_toplist(self) -> ToplistResult:
        """List every chart, falling back to the built-in chart list."""

        async def operation(dialect: Dialect, base_url: str) -> ToplistResult:
            request = dialect.toplist(base_url)
            if request is None:
                return ToplistResult(toplists=[ToplistEntry(**entry) for entry in BUILT_IN_TOPLIST])
            return ToplistResult(toplists=dialect.decode_toplist(await self._get_json(request)))

        return await self._cached("all_toplist", CacheCategory.TOP_SONGS, operation)

    async def get_hot_playlists(
        self,
        order: str = "hot",
        category: str = "全部",
        limit: int = 30,
        offset: int = 0,
    ) -> HotPlaylistsResult:
        async def operation(dialect: Dialect, base_url: str) -> HotPlaylistsResult:
            request = dialect.hot_playlists(base_url, order, category, limit, offset)
            if request is None:
                logger.info("Active source does not list hot playlists")
                return HotPlaylistsResult()
            return dialect.decode_hot_playlists(await self._get_json(request))

        key = f"hot_playlists_{order}_{category}_{limit}_{offset}"
        return await self._cached(key, CacheCategory.HOT_PLAYLISTS, operation)

    # Artists

    async def get_artist_info(self, artist_id: str, source: str = PRIMARY_PLATFORM) -> ArtistInfo:
        """Fetch an artist's name, description and popular songs."""

        async def operation(dialect: Dialect, base_url: str) -> ArtistInfo:
            data = await self._get_json(dialect.artist(base_url, artist_id, source))
            name, description, tracks = dialect.decode_artist(data)
            return ArtistInfo(name=name, description=description, songs=to_songs(tracks, source, require_id=True))

        return await self._cached(f"artist_{source}_{artist_id}", CacheCategory.ARTIST_INFO, operation)

    async def get_artist_albums(
        self,
        artist_id: str,
        source: str = PRIMARY_PLATFORM,
        limit: int = 50,
    ) -> list[AlbumSummary]:
        async def operation(dialect: Dialect, base_url: str) -> list[AlbumSummary]:
            request = dialect.artist_albums(base_url, artist_id, source, limit)
            if request is None:
                return []
            return dialect.decode_artist_albums(await self._get_json(request), source)[:limit]

        key = f"artist_albums_{source}_{artist_id}_{limit}"
        return await self._cached(key, CacheCategory.ARTIST_INFO, operation)

    async def get_artist_desc(self, artist_id: str) -> str:
        async def operation(dialect: Dialect, base_url: str) -> str:
            request = dialect.artist_desc(base_url, artist_id)
            if request is None:
                return ""
            return dialect.decode_artist_desc(await self._get_json(request))

        return await self._cached(f"artist_desc_{artist_id}", CacheCategory.ARTIST_INFO, operation)

    async def get_artist_list(
        self,
        artist_type: int = -1,
        area: int = -1,
        initial: str | int = -1,
        limit: int = 30,
        offset: int = 0,
    ) -> ArtistListResult:
        """Browse artists by type, area and initial.

        Args:
            artist_type: -1 all, 1 male, 2 female, 3 band
            area: -1 all, 7 Chinese, 96 Western, 8 Japanese, 16 Korean, 0 other
            initial: Initial letter, -1 for all
            limit: Page size
            offset: Page offset
        """

        async def operation(dialect: Dialect, base_url: str) -> ArtistListResult:
            request = dialect.artist_list(base_url, artist_type, area, initial, limit, offset)
            if request is None:
                logger.info("Active source does not list artists")
                return ArtistListResult()
            return dialect.decode_artist_list(await self._get_json(request))

        key = f"artist_list_{artist_type}_{area}_{initial}_{limit}_{offset}"
        return await self._cached(key, CacheCategory.ARTIST_INFO, operation)

    async def get_artist_top_songs(self, artist_id: str) -> ArtistTopSongs:
        """Fetch an artist's top songs; empty when the backend cannot serve them."""

        async def operation(dialect: Dialect, base_url: str) -> ArtistTopSongs:
            request = dialect.artist_top_songs(base_url, artist_id)
            if request is None:
                logger.warning("Active source does not serve top songs for artist %s", artist_id)
                return ArtistTopSongs(artist=ArtistSummary(id=artist_id))
            artist, tracks = dialect.decode_artist_top_songs(await self._get_json(request), artist_id)
            songs = [
                song.model_copy(update={"artist": [artist.name]})
                for song in to_songs(tracks, PRIMARY_PLATFORM, require_id=True)
            ]
            return ArtistTopSongs(artist=artist, songs=songs)

        return await self._cached(f"artist_top_songs_{artist_id}", CacheCategory.ARTIST_INFO, operation)

    # Albums

    async def get_album_info(self, album_id: str, source: str = PRIMARY_PLATFORM) -> AlbumInfo:
        async def operation(dialect: Dialect, base_url: str) -> AlbumInfo:
            data = await self._get_json(dialect.album(base_url, album_id, source))
            name, artist, description, tracks = dialect.decode_album(data)
            songs = to_songs(tracks, source, require_id=True)
            return AlbumInfo(name=name, artist=artist, description=description, songs=songs)

        return await self._cached(f"album_info_{source}_{album_id}", CacheCategory.ALBUM_INFO, operation)

    async def get_album_songs(self, album_id: str, source: str = PRIMARY_PLATFORM) -> list[Song]:
        async def operation(dialect: Dialect, base_url: str) -> list[Song]:
            request = dialect.album_songs(base_url, album_id) or dialect.album(base_url, album_id, source)
            _, _, _, tracks = dialect.decode_album(await self._get_json(request))
            return to_songs(tracks, source, require_id=True)

        return await self._cached(f"album_songs_{source}_{album_id}", CacheCategory.ALBUM_INFO, operation)

    async def get_album_cover_url(self, song: Song, size: int | None = None) -> str:
        """Resolve the cover image URL of a song.

        NetEase-compatible backends get a direct CDN URL without a request.
        Other backends are asked once; a failure at another size is retried at
        300 pixels and finally yields the placeholder image.

        Args:
            song: Song whose cover to resolve
            size: Requested edge length in pixels

        Returns:
            Cover URL, or the placeholder data URI
        """
        if not song.pic_id:
            return DEFAULT_COVER

        bucket = pick_cover_size(size)
        key = f"cover_{song.source}_{song.pic_id}_{bucket}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        base_url = self._registry.active_url
        dialect = get_dialect(base_url)
        url = dialect.direct_cover_url(song.pic_id, bucket)
        if url is None:
            try:
                data = await self._get_json(dialect.cover(base_url, song, song.pic_id, bucket), max_retries=1)
                url = dialect.decode_cover(data)
            except ApiError as e:
                logger.warning("Cover lookup for %s failed: %s", song.pic_id, e.message)

        if url:
            self._cache.set(key, url, CacheCategory.ALBUM_COVER)
            return url
        if bucket != DEFAULT_COVER_SIZE:
            return await self.get_album_cover_url(song, DEFAULT_COVER_SIZE)
        return DEFAULT_COVER

    # Discovery

    async def get_similar_songs(self, song_id: str, source: str = PRIMARY_PLATFORM, limit: int = 10) -> list[Song]:
        """Fetch songs similar to a track, or a recommendation search."""

        async def operation(dialect: Dialect, base_url: str) -> list[Song] | None:
            request = dialect.similar_songs(base_url, song_id)
            if request is None:
                return None
            data = await self._get_json(request)
            return to_songs(dialect.decode_similar_songs(data), source, require_id=True, limit=limit)

        key = f"similar_{source}_{song_id}_{limit}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        songs = await self._deduplicator.dedupe(key, lambda: self._with_failover(key, operation))
        if songs is None:
            return await self.search(SIMILAR_SEARCH_KEYWORD, source, limit)
        self._cache.set(key, songs, CacheCategory.SEARCH)
        return songs

    async def get_comments(self, song_id: str, limit: int = 20) -> CommentsResult:
        async def operation(dialect: Dialect, base_url: str) -> CommentsResult:
            request = dialect.comments(base_url, song_id, limit)
            if request is None:
                return CommentsResult()
            return dialect.decode_comments(await self._get_json(request))

        return await self._cached(f"comments_{song_id}_{limit}", CacheCategory.COMMENTS, operation)

    # Playback

    async def get_song_url(self, song: Song, quality: str = "320", force_refresh: bool = False) -> SongUrlResult:
        """Resolve a playable stream URL; never raises."""
        return await self._resolver.resolve(song, quality, force_refresh)

    # Housekeeping

    def get_stats(self) -> ApiStats:
        cache_stats = self._cache.get_stats()
        return ApiStats(
            cache_hit_rate=cache_stats.hit_rate,
            cache_size=cache_stats.total,
            active_requests=self._deduplicator.active_count,
            cache_stats=cache_stats,
            active_source=self._registry.current_status(),
        )

    async def warmup(self) -> bool:
        """Preload the hot chart so the first page load is served from cache."""

        async def preload() -> None:
            songs = await self.get_top_songs("hot", PRIMARY_PLATFORM, 20)
            logger.info("Preloaded %d chart songs", len(songs))

        return await self._cache.warmup(preload)
