"""Client side of the media proxy contract ``GET <endpoint>?url=<encoded target>``."""

import re
from urllib.parse import quote, urlparse

from wavebridge_api.core.logger import get_logger
from wavebridge_api.modules.catalog.constants import (
    HIGH_QUALITY_LEVELS,
    PRIVATE_HOST_PATTERNS,
    PROXY_ALLOWED_DOMAINS,
    PROXY_TRUSTED_DOMAINS,
)

# Initialize module logger
logger = get_logger("modules.catalog.proxy")

PRIVATE_HOST_RES = tuple(re.compile(pattern, re.IGNORECASE) for pattern in PRIVATE_HOST_PATTERNS)


def is_url_safe(url: str) -> bool:
    """Reject non-http(s) URLs and URLs pointing at loopback or private hosts."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    hostname = parsed.hostname or ""
    if not hostname:
        return False
    if any(pattern.search(hostname) for pattern in PRIVATE_HOST_RES):
        logger.warning("Refusing private host in URL: %s", hostname)
        return False
    return True


class MediaProxy:
    """Decides when media URLs go through the proxy and builds proxied URLs."""

    def __init__(
        self,
        endpoint: str = "/proxy",
        enabled: bool = False,
        proxy_sources: tuple[str, ...] | list[str] = ("bilibili",),
        allowed_domains: tuple[str, ...] = PROXY_ALLOWED_DOMAINS,
        auto_https: bool = True,
    ) -> None:
        """Initialize the proxy client.

        Args:
            endpoint: Proxy endpoint accepting a ``url`` query parameter
            enabled: Whether proxying is active at all
            proxy_sources: Platforms whose media always goes through the proxy
            allowed_domains: Hosts the proxy accepts
            auto_https: Upgrade plain http URLs that are not proxied
        """
        self.endpoint = endpoint
        self.enabled = enabled
        self.proxy_sources = tuple(proxy_sources)
        self.allowed_domains = allowed_domains
        self.auto_https = auto_https

    def is_allowed_host(self, url: str) -> bool:
        hostname = urlparse(url).hostname or ""
        return any(hostname == domain or hostname.endswith(f".{domain}") for domain in self.allowed_domains)

    def needs_proxy(self, url: str, source: str | None = None) -> bool:
        """Whether a media URL must be fetched through the proxy.

        Args:
            url: Media URL
            source: Platform the media belongs to

        Returns:
            True for proxied platforms and for plain-http allow-listed hosts
        """
        if not url or not self.enabled:
            return False
        if source and source in self.proxy_sources:
            return True
        return urlparse(url).scheme == "http" and self.is_allowed_host(url)

    def should_bypass_proxy(self, url: str, quality: str) -> bool:
        """High quality downloads from trusted CDNs skip the proxy to avoid timeouts."""
        if not url or quality not in HIGH_QUALITY_LEVELS:
            return False
        return any(domain in url for domain in PROXY_TRUSTED_DOMAINS)

    def route(self, url: str, source: str | None = None, quality: str | None = None) -> str | None:
        """Return the proxied URL for a media resource, or None when it is fetched directly.

        Args:
            url: Media URL
            source: Platform the media belongs to
            quality: Requested quality label

        Returns:
            ``<endpoint>?url=<encoded>`` or None
        """
        if not self.needs_proxy(url, source):
            return None
        if quality and self.should_bypass_proxy(url, quality):
            return None
        if not is_url_safe(url):
            return None
        return f"{self.endpoint}?url={quote(url, safe='')}"

    def get_proxied_url(self, url: str, source: str | None = None, quality: str | None = None) -> str:
        """Return the URL a client should fetch for a media resource.

        Args:
            url: Media URL
            source: Platform the media belongs to
            quality: Requested quality label

        Returns:
            Proxied URL, https-upgraded URL, or the URL unchanged
        """
        if not url or (quality and self.should_bypass_proxy(url, quality)):
            return url
        proxied = self.route(url, source, quality)
        if proxied is not None:
            return proxied
        if self.auto_https and url.startswith("http://"):
            return "https://" + url.removeprefix("http://")
        return url
