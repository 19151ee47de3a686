"""Stream URL resolution across backends with CDN fallback and de-greying.

Resolution never raises: "no playable URL" is an expected outcome and comes
back as a :class:`SongUrlResult` carrying an error message.
"""

from logging import Logger

from wavebridge_api.core.logger import get_logger
from wavebridge_api.modules.catalog.cache import CacheCategory, TieredCache
from wavebridge_api.modules.catalog.constants import (
    DURATION_TOLERANCE,
    ERROR_MESSAGES,
    NETEASE_OUTER_URL,
    PRIMARY_PLATFORM,
    QUALITY_LEVELS,
    REACHABLE_PROBE_STATUSES,
)
from wavebridge_api.modules.catalog.dialects import GDStudioDialect, get_dialect, to_songs
from wavebridge_api.modules.catalog.errors import ApiError
from wavebridge_api.modules.catalog.executor import RetryingExecutor, parse_json_response
from wavebridge_api.modules.catalog.normalizers import is_similar
from wavebridge_api.modules.catalog.proxy import MediaProxy
from wavebridge_api.modules.catalog.schemas import Song, SongUrlResult
from wavebridge_api.modules.catalog.sources import SourceRegistry

# Initialize module logger
logger: Logger = get_logger("modules.catalog.resolver")

RANGE_PROBE_HEADERS = {"Range": "bytes=0-0"}


def song_url_cache_key(song: Song, quality: str) -> str:
    return f"song_url_{song.source}_{song.id}_{quality}"


def matches_original(original: Song, candidate: Song) -> bool:
    """Whether a track from another platform is the same recording.

    Title and artist must contain each other in either direction. When both
    durations are known they must agree within five seconds, which rejects
    remixes and live cuts with a matching title.

    Args:
        original: Track that could not be resolved
        candidate: Search result from another platform

    Returns:
        True when the candidate can stand in for the original
    """
    if not is_similar(original.name, candidate.name):
        return False
    if not is_similar(original.artist[0], "".join(candidate.artist)):
        return False
    if original.duration and candidate.duration:
        return abs(original.duration - candidate.duration) <= DURATION_TOLERANCE
    return True


class StreamResolver:
    """Resolves playable stream URLs for songs."""

    def __init__(
        self,
        registry: SourceRegistry,
        executor: RetryingExecutor,
        cache: TieredCache,
        proxy: MediaProxy | None = None,
        degrey_api_url: str = "https://music-api.gdstudio.xyz/api.php",
        degrey_platforms: tuple[str, ...] | list[str] = ("kugou", "kuwo", "tencent"),
        degrey_search_count: int = 10,
        probe_timeout: float = 3.0,
    ) -> None:
        """Initialize the resolver.

        Args:
            registry: Source registry providing the playback backends
            executor: Request executor
            cache: Cache for resolved URLs
            proxy: Media proxy used for reachability probes
            degrey_api_url: Backend searched for substitute tracks
            degrey_platforms: Platforms searched for substitutes, in order
            degrey_search_count: Search results inspected per platform
            probe_timeout: Range probe timeout in seconds
        """
        self._registry = registry
        self._executor = executor
        self._cache = cache
        self._proxy = proxy
        self._degrey_api_url = degrey_api_url
        self._degrey_platforms = tuple(degrey_platforms)
        self._degrey_search_count = degrey_search_count
        self._probe_timeout = probe_timeout
        self._degrey_dialect = GDStudioDialect()

    def invalidate(self, song: Song) -> int:
        """Drop cached stream URLs of a song for every quality.

        Returns:
            Number of cache entries removed
        """
        removed = sum(self._cache.delete(song_url_cache_key(song, quality)) for quality in QUALITY_LEVELS)
        if removed:
            logger.debug("Invalidated %d cached URLs for %s:%s", removed, song.source, song.id)
        return removed

    async def resolve(self, song: Song, quality: str = "320", force_refresh: bool = False) -> SongUrlResult:
        """Resolve a playable URL for a song.

        Playback backends are tried in priority order, skipping NetEase-only
        backends for songs from other platforms. When every backend fails for
        a NetEase song, equivalent tracks are searched on other platforms.

        Args:
            song: Song to resolve
            quality: Bitrate label (128, 192, 320, 999, flac)
            force_refresh: Ignore cached URLs for the song

        Returns:
            Result with a URL, or with an aggregate error listing attempts
        """
        if force_refresh:
            self.invalidate(song)

        cache_key = song_url_cache_key(song, quality)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        attempted: list[str] = []
        errors: list[str] = []

        for source in self._registry.playback_sources:
            dialect = get_dialect(source.url)
            if dialect.requires_primary_platform and song.source != PRIMARY_PLATFORM:
                logger.debug("Skipping %s for %s song %s", source.name, song.source, song.id)
                continue

            attempted.append(source.name)
            result = await self.fetch_from_source(song, quality, source.url)
            if result.url:
                result = result.model_copy(update={"api_source": source.name, "attempted_sources": list(attempted)})
                self._cache.set(cache_key, result, CacheCategory.SONG_URL)
                return result
            if result.error:
                errors.append(result.error)

        if song.source == PRIMARY_PLATFORM:
            substitute = await self.match_in_other_platforms(song, quality)
            if substitute is not None:
                attempted.append(self._degrey_api_url)
                result = substitute.model_copy(update={"attempted_sources": list(attempted)})
                self._cache.set(cache_key, result, CacheCategory.SONG_URL)
                return result

        if errors:
            message = ERROR_MESSAGES["ALL_SOURCES_FAILED"].format(count=len(attempted), first_error=errors[0])
        else:
            message = ERROR_MESSAGES["NO_STREAM_URL"]
        logger.warning("Could not resolve %s:%s after %s", song.source, song.id, attempted)
        return SongUrlResult(error=message, attempted_sources=attempted)

    async def fetch_from_source(self, song: Song, quality: str, api_url: str) -> SongUrlResult:
        """Ask a single backend for a stream URL.

        For NetEase songs a request failure, an empty URL or an unreachable
        URL falls back to the platform's direct CDN location.

        Args:
            song: Song to resolve
            quality: Bitrate label
            api_url: Backend base URL

        Returns:
            Result with a URL or an error message
        """
        dialect = get_dialect(api_url)
        request = dialect.song_url(api_url, song, quality)
        is_primary = song.source == PRIMARY_PLATFORM

        try:
            response = await self._executor.execute(request.url, {"params": request.params})
            stream_url = dialect.decode_song_url(parse_json_response(response))
        except ApiError as e:
            logger.warning("Stream URL request to %s failed for %s: %s", api_url, song.id, e.message)
            if is_primary:
                direct = await self.direct_cdn_fallback(song, quality)
                if direct is not None:
                    return direct
            return SongUrlResult(error=ERROR_MESSAGES["REQUEST_FAILED"].format(error=e.message))

        if stream_url:
            if not is_primary or await self.validate_url(stream_url, song.source, quality):
                return SongUrlResult(url=stream_url, bitrate=quality)
            logger.info("Resolved URL for %s is unreachable, trying direct CDN", song.id)
            direct = await self.direct_cdn_fallback(song, quality)
            return direct or SongUrlResult(error=ERROR_MESSAGES["URL_EXPIRED"])

        if is_primary:
            direct = await self.direct_cdn_fallback(song, quality)
            if direct is not None:
                return direct
        return SongUrlResult(error=ERROR_MESSAGES["NO_STREAM_URL"])

    async def direct_cdn_fallback(self, song: Song, quality: str) -> SongUrlResult | None:
        """Try the NetEase outer-link CDN URL for a song."""
        url = NETEASE_OUTER_URL.format(song_id=song.id)
        if await self.validate_url(url, song.source, quality):
            logger.info("Using direct CDN URL for %s", song.id)
            return SongUrlResult(url=url, bitrate=quality)
        return None

    async def validate_url(self, url: str, source: str | None = None, quality: str | None = None) -> bool:
        """Check that a media URL is reachable with a one-byte range request.

        200, 206 and 416 all prove the media exists. HEAD is not used because
        media CDNs frequently reject it on cross-origin requests. The probe
        targets the URL that will be returned, going through the proxy only
        when the media is proxied and the endpoint is absolute.
        """
        probe_url = url
        if self._proxy is not None:
            proxied = self._proxy.route(url, source, quality)
            if proxied is not None and proxied.startswith(("http://", "https://")):
                probe_url = proxied
        status = await self._executor.probe(probe_url, headers=RANGE_PROBE_HEADERS, timeout=self._probe_timeout)
        return status in REACHABLE_PROBE_STATUSES

    async def match_in_other_platforms(self, song: Song, quality: str) -> SongUrlResult | None:
        """Find and resolve the same track on another platform.

        Args:
            song: NetEase song whose stream is unavailable
            quality: Bitrate label

        Returns:
            Result recording the substitute platform, or None
        """
        if not song.artist:
            return None
        keyword = f"{song.name} {song.artist[0]}"

        for platform in self._degrey_platforms:
            request = self._degrey_dialect.search(
                self._degrey_api_url,
                keyword,
                platform,
                self._degrey_search_count,
            )
            try:
                response = await self._executor.execute(request.url, {"params": request.params}, max_retries=0)
                candidates = to_songs(self._degrey_dialect.decode_songs(parse_json_response(response)), platform)
            except ApiError as e:
                logger.warning("Substitute search on %s failed: %s", platform, e.message)
                continue

            match = next((candidate for candidate in candidates if matches_original(song, candidate)), None)
            if match is None:
                logger.debug("No substitute for %s on %s", song.id, platform)
                continue

            result = await self.fetch_from_source(match, quality, self._degrey_api_url)
            if result.url:
                logger.info("Substituted %s with %s:%s", song.id, platform, match.id)
                return result.model_copy(update={"used_source": platform, "api_source": self._degrey_api_url})

        return None
