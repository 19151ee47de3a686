"""Tests for stream URL resolution."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from wavebridge_api.modules.catalog.cache import TieredCache
from wavebridge_api.modules.catalog.constants import NETEASE_OUTER_URL
from wavebridge_api.modules.catalog.errors import classify_status
from wavebridge_api.modules.catalog.executor import RetryingExecutor
from wavebridge_api.modules.catalog.proxy import MediaProxy
from wavebridge_api.modules.catalog.resolver import StreamResolver, matches_original, song_url_cache_key
from wavebridge_api.modules.catalog.schemas import Song, SourceDescriptor
from wavebridge_api.modules.catalog.sources import SourceRegistry

NCM = SourceDescriptor(name="NCM", url="https://music888.zeabur.app/")
GDSTUDIO = SourceDescriptor(name="GDStudio", url="https://music-api.gdstudio.xyz/api.php")
METING = SourceDescriptor(name="Meting", url="https://api.injahow.cn/meting/")
DEGREY_URL = "https://backup.gdstudio.org/api.php"
OUTER_URL = NETEASE_OUTER_URL.format(song_id="186016")


@pytest.fixture
def executor():
    """Return an executor with scripted requests and probes."""
    executor = MagicMock(spec=RetryingExecutor)
    executor.execute = AsyncMock()
    executor.probe = AsyncMock(return_value=206)
    return executor


@pytest.fixture
def cache():
    """Return an empty cache."""
    return TieredCache()


def make_resolver(executor, cache, *playback: SourceDescriptor, proxy: MediaProxy | None = None) -> StreamResolver:
    registry = MagicMock(spec=SourceRegistry)
    registry.playback_sources = playback
    return StreamResolver(
        registry=registry,
        executor=executor,
        cache=cache,
        proxy=proxy,
        degrey_api_url=DEGREY_URL,
        degrey_platforms=["kugou", "kuwo"],
    )


def kuwo_song(**overrides) -> Song:
    return Song(**{"id": "k42", "name": "晴天", "artist": ["周杰伦"], "source": "kuwo", **overrides})


@pytest.mark.parametrize(
    ("candidate_duration", "expected"),
    [(200.0, True), (203.0, True), (205.0, True), (230.0, False), (None, True)],
)
def test_matches_original_duration(candidate_duration, expected):
    """Test the five second duration tolerance."""
    original = Song(id="1", name="晴天", artist=["周杰伦"], duration=200.0)
    candidate = Song(id="2", name="晴天", artist=["周杰伦"], duration=candidate_duration, source="kugou")
    assert matches_original(original, candidate) is expected


def test_matches_original_names():
    """Test the containment checks on title and artist."""
    original = Song(id="1", name="晴天", artist=["周杰伦"])
    assert matches_original(original, Song(id="2", name="晴天 (Live)", artist=["周杰伦", "五月天"]))
    assert not matches_original(original, Song(id="2", name="七里香", artist=["周杰伦"]))
    assert not matches_original(original, Song(id="2", name="晴天", artist=["Jay Chou"]))


@pytest.mark.asyncio
async def test_request_failure_uses_direct_cdn(executor, cache, sample_song):
    """Test that a 401 from the backend falls back to the outer CDN URL."""
    executor.execute.side_effect = classify_status(401)
    resolver = make_resolver(executor, cache, NCM)

    result = await resolver.resolve(sample_song, "flac")

    assert result.url == OUTER_URL
    assert result.bitrate == "flac"
    assert result.api_source == "NCM"
    assert result.attempted_sources == ["NCM"]
    executor.probe.assert_awaited_once_with(OUTER_URL, headers={"Range": "bytes=0-0"}, timeout=3.0)


@pytest.mark.asyncio
async def test_unreachable_url_falls_back_to_cdn(executor, cache, sample_song, make_response):
    """Test that a resolved but unreachable URL is replaced by the CDN URL."""
    executor.execute.return_value = make_response(json_data={"data": [{"url": "https://m701.music.126.net/x.mp3"}]})
    executor.probe.side_effect = lambda url, **kwargs: 206 if url == OUTER_URL else 403
    resolver = make_resolver(executor, cache, NCM)

    result = await resolver.resolve(sample_song)

    assert result.url == OUTER_URL
    assert executor.probe.await_count == 2


@pytest.mark.asyncio
async def test_unreachable_url_and_cdn_expired(executor, cache, make_response):
    """Test the expired message when neither URL is reachable."""
    executor.execute.return_value = make_response(json_data={"data": [{"url": "https://m701.music.126.net/x.mp3"}]})
    executor.probe.return_value = 404
    resolver = make_resolver(executor, cache, NCM)

    result = await resolver.fetch_from_source(Song(id="1", name="x", source="netease"), "320", NCM.url)

    assert not result.ok
    assert result.error == "音乐链接已失效（版权或地区限制）"


@pytest.mark.asyncio
async def test_non_primary_song_skips_netease_only_backend(executor, cache, make_response):
    """Test that NetEase-only backends are not asked for other platforms."""
    executor.execute.return_value = make_response(json_data={"url": "https://sycdn.kuwo.cn/k42.mp3"})
    resolver = make_resolver(executor, cache, NCM, GDSTUDIO)

    result = await resolver.resolve(kuwo_song())

    assert result.url == "https://sycdn.kuwo.cn/k42.mp3"
    assert result.api_source == "GDStudio"
    assert result.attempted_sources == ["GDStudio"]
    assert executor.execute.await_args.args[0] == GDSTUDIO.url
    executor.probe.assert_not_awaited()


@pytest.mark.asyncio
async def test_aggregate_error_lists_attempts(executor, cache):
    """Test the aggregate failure message and attempted sources."""
    executor.execute.side_effect = classify_status(500)
    resolver = make_resolver(executor, cache, GDSTUDIO, METING)

    result = await resolver.resolve(kuwo_song())

    assert not result.ok
    assert result.error == "尝试2个API均失败 - API请求失败: HTTP 500"
    assert result.attempted_sources == ["GDStudio", "Meting"]
    assert song_url_cache_key(kuwo_song(), "320") not in cache


@pytest.mark.asyncio
async def test_no_applicable_backend(executor, cache):
    """Test the message when no backend could be asked."""
    resolver = make_resolver(executor, cache, NCM)

    result = await resolver.resolve(kuwo_song())

    assert result.error == "无法获取音乐链接"
    assert result.attempted_sources == []


@pytest.mark.asyncio
async def test_cached_until_forced(executor, cache, make_response):
    """Test that resolved URLs are cached and force_refresh bypasses them."""
    executor.execute.return_value = make_response(json_data={"url": "https://sycdn.kuwo.cn/k42.mp3"})
    resolver = make_resolver(executor, cache, GDSTUDIO)
    song = kuwo_song()

    await resolver.resolve(song)
    await resolver.resolve(song)
    assert executor.execute.await_count == 1

    await resolver.resolve(song, force_refresh=True)
    assert executor.execute.await_count == 2


def test_invalidate_every_quality(executor, cache):
    """Test that invalidation drops cached URLs of all qualities."""
    resolver = make_resolver(executor, cache, GDSTUDIO)
    song = kuwo_song()
    cache.set(song_url_cache_key(song, "128"), "a")
    cache.set(song_url_cache_key(song, "flac"), "b")
    cache.set("song_url_kuwo_other_128", "c")

    assert resolver.invalidate(song) == 2
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_substitute_from_other_platform(executor, cache, sample_song, make_response):
    """Test de-greying through a matching track on another platform."""
    search_results = [
        {"id": "k1", "name": "晴天", "artist": ["周杰伦"], "source": "kugou", "dt": 300000},
        {"id": "k2", "name": "晴天", "artist": ["周杰伦"], "source": "kugou", "dt": 271000},
    ]

    async def execute(url, options=None, max_retries=None):
        if url.startswith("https://music888.zeabur.app"):
            raise classify_status(404)
        params = options["params"]
        if params["types"] == "search":
            assert params["name"] == "晴天 周杰伦"
            assert params["source"] == "kugou"
            return make_response(json_data=search_results)
        assert params == {"types": "url", "source": "kugou", "id": "k2", "br": "320"}
        return make_response(json_data={"url": "https://kugou.com/k2.mp3"})

    executor.execute.side_effect = execute
    executor.probe.return_value = None
    resolver = make_resolver(executor, cache, NCM)

    result = await resolver.resolve(sample_song)

    assert result.url == "https://kugou.com/k2.mp3"
    assert result.used_source == "kugou"
    assert result.api_source == DEGREY_URL
    assert result.attempted_sources == ["NCM", DEGREY_URL]
    assert cache.get(song_url_cache_key(sample_song, "320")) == result


@pytest.mark.asyncio
async def test_substitute_search_failure_moves_on(executor, cache, sample_song, make_response):
    """Test that a failing platform search continues with the next platform."""

    async def execute(url, options=None, max_retries=None):
        params = (options or {}).get("params", {})
        if url.startswith("https://music888.zeabur.app") or params.get("source") == "kugou":
            raise classify_status(503)
        if params["types"] == "search":
            return make_response(json_data=[{"id": "w1", "name": "晴天", "artist": "周杰伦", "source": "kuwo"}])
        return make_response(json_data={"url": "https://sycdn.kuwo.cn/w1.mp3"})

    executor.execute.side_effect = execute
    executor.probe.return_value = None
    resolver = make_resolver(executor, cache, NCM)

    result = await resolver.resolve(sample_song)

    assert result.used_source == "kuwo"
    searches = [call for call in executor.execute.await_args_list if call.args[0] == DEGREY_URL]
    assert all(call.kwargs.get("max_retries") == 0 for call in searches if call.args[1]["params"]["types"] == "search")


@pytest.mark.asyncio
async def test_probe_goes_through_absolute_proxy(executor, cache):
    """Test that reachability probes use the proxy when it is absolute."""
    proxy = MediaProxy(endpoint="https://proxy.example.com/proxy", enabled=True)
    resolver = make_resolver(executor, cache, NCM, proxy=proxy)

    assert await resolver.validate_url("http://music.163.com/x.mp3", "netease")

    probed = executor.probe.await_args.args[0]
    assert probed.startswith("https://proxy.example.com/proxy?url=")

    relative = make_resolver(executor, cache, NCM, proxy=MediaProxy(endpoint="/proxy", enabled=True))
    await relative.validate_url("http://music.163.com/x.mp3", "netease")
    assert executor.probe.await_args.args[0] == "http://music.163.com/x.mp3"


@pytest.mark.asyncio
async def test_probe_checks_the_returned_url_with_default_proxy(executor, cache):
    """Test that an unproxied http URL is probed as is, without the https upgrade."""
    resolver = make_resolver(executor, cache, NCM, proxy=MediaProxy())

    assert await resolver.validate_url("http://m701.music.126.net/x.mp3", "netease")
    assert executor.probe.await_args.args[0] == "http://m701.music.126.net/x.mp3"


@pytest.mark.asyncio
async def test_probe_skips_proxy_for_lossless_trusted_cdn(executor, cache):
    """Test that lossless media on trusted CDNs is probed directly."""
    proxy = MediaProxy(endpoint="https://proxy.example.com/proxy", enabled=True)
    resolver = make_resolver(executor, cache, NCM, proxy=proxy)

    await resolver.validate_url("http://music.163.com/x.flac", "netease", "flac")
    assert executor.probe.await_args.args[0] == "http://music.163.com/x.flac"

    await resolver.validate_url("http://music.163.com/x.mp3", "netease", "320")
    assert executor.probe.await_args.args[0].startswith("https://proxy.example.com/proxy?url=")
