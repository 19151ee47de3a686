"""Tests for the media proxy client."""

import pytest

from wavebridge_api.modules.catalog.proxy import MediaProxy, is_url_safe


@pytest.fixture
def proxy():
    """Return an enabled proxy client."""
    return MediaProxy(endpoint="https://proxy.example.com/proxy", enabled=True)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://m701.music.126.net/a.mp3", True),
        ("http://sycdn.kuwo.cn/a.mp3", True),
        ("ftp://music.163.com/a.mp3", False),
        ("http://localhost:8000/a.mp3", False),
        ("http://127.0.0.1/a.mp3", False),
        ("http://192.168.1.10/a.mp3", False),
        ("http://172.20.0.1/a.mp3", False),
        ("http://172.32.0.1/a.mp3", True),
        ("not a url", False),
    ],
)
def test_is_url_safe(url, expected):
    """Test the scheme and private host checks."""
    assert is_url_safe(url) is expected


class TestNeedsProxy:
    """Tests for the proxy decision."""

    def test_disabled(self):
        """Test that a disabled proxy never applies."""
        assert not MediaProxy(enabled=False).needs_proxy("http://music.163.com/a.mp3", "bilibili")

    def test_proxied_platform(self, proxy):
        """Test that configured platforms always go through the proxy."""
        assert proxy.needs_proxy("https://upos.bilivideo.com/a.m4a", "bilibili")

    def test_plain_http_allowed_host(self, proxy):
        """Test that insecure allow-listed media is proxied."""
        assert proxy.needs_proxy("http://music.163.com/a.mp3")
        assert not proxy.needs_proxy("https://music.163.com/a.mp3")
        assert not proxy.needs_proxy("http://example.org/a.mp3")

    def test_subdomain_matching(self, proxy):
        """Test that only real subdomains of allowed hosts match."""
        assert proxy.is_allowed_host("http://er.sycdn.kuwo.cn/a.mp3")
        assert not proxy.is_allowed_host("http://evilkuwo.cn/a.mp3")


class TestProxiedUrl:
    """Tests for URL rewriting."""

    def test_encodes_target(self, proxy):
        """Test that the target is passed as an encoded query parameter."""
        assert (
            proxy.get_proxied_url("http://music.163.com/a b.mp3")
            == "https://proxy.example.com/proxy?url=http%3A%2F%2Fmusic.163.com%2Fa%20b.mp3"
        )

    def test_high_quality_bypass(self, proxy):
        """Test that lossless downloads from trusted CDNs are not proxied."""
        url = "http://music.163.com/a.flac"
        assert proxy.should_bypass_proxy(url, "flac")
        assert not proxy.should_bypass_proxy(url, "320")
        assert proxy.get_proxied_url(url, quality="flac") == url
        assert proxy.get_proxied_url(url, quality="320").startswith("https://proxy.example.com/proxy?url=")

    def test_https_upgrade(self):
        """Test that unproxied plain http URLs are upgraded."""
        proxy = MediaProxy(enabled=False)
        assert proxy.get_proxied_url("http://example.org/a.mp3") == "https://example.org/a.mp3"
        assert MediaProxy(auto_https=False).get_proxied_url("http://example.org/a.mp3") == "http://example.org/a.mp3"

    def test_private_target_not_proxied(self, proxy):
        """Test that an unsafe target is never handed to the proxy."""
        assert proxy.get_proxied_url("http://127.0.0.1/a.mp3", "bilibili") == "https://127.0.0.1/a.mp3"

    def test_empty(self, proxy):
        """Test that an empty URL is returned as is."""
        assert proxy.get_proxied_url("") == ""


class TestRoute:
    """Tests for the proxy routing decision without the https upgrade."""

    def test_direct_media_is_not_rewritten(self):
        """Test that default settings leave plain http media untouched."""
        assert MediaProxy().route("http://m701.music.126.net/a.mp3", "netease") is None

    def test_proxied_media(self, proxy):
        assert proxy.route("http://music.163.com/a.mp3") == (
            "https://proxy.example.com/proxy?url=http%3A%2F%2Fmusic.163.com%2Fa.mp3"
        )

    def test_high_quality_and_unsafe_targets(self, proxy):
        """Test that bypassed and private targets are fetched directly."""
        assert proxy.route("http://music.163.com/a.flac", quality="999") is None
        assert proxy.route("http://127.0.0.1/a.mp3", "bilibili") is None
