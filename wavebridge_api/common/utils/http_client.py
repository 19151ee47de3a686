"""Shared httpx client lifecycle for upstream catalog calls.

A single pooled :class:`httpx.AsyncClient` is opened lazily on first use and
shared by every request, search and probe issued through the owner. Media CDN
URLs redirect (the NetEase outer link answers with a 302), so redirects are
always followed.
"""

import asyncio
from typing import Any, Self

import httpx

from wavebridge_api.core.logger import get_logger

# Initialize module logger
logger = get_logger("common.utils.http_client")

# Upstream backends are few but probes fan out, so keep a modest pool
DEFAULT_LIMITS = httpx.Limits(max_connections=50, max_keepalive_connections=20, keepalive_expiry=30.0)


class BaseHttpxClient:
    """Owner of one lazily opened, pooled httpx client.

    Use it as an async context manager, or call :meth:`close` explicitly.
    Concurrent first calls share the same client.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        limits: httpx.Limits = DEFAULT_LIMITS,
    ) -> None:
        """Initialize the client owner.

        Args:
            timeout: Default httpx timeout in seconds
            headers: Default headers sent with every request
            limits: Connection pool limits
        """
        self.timeout = timeout
        self.headers = headers or {}
        self.limits = limits
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._client is not None and not self._client.is_closed

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers=self.headers,
            limits=self.limits,
            follow_redirects=True,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Return the shared client, opening it on first use."""
        if self.is_open:
            return self._client  # type: ignore[return-value]
        async with self._lock:
            if not self.is_open:
                logger.debug("Opening upstream HTTP client (timeout=%.1fs)", self.timeout)
                self._client = self._build_client()
        return self._client  # type: ignore[return-value]

    async def close(self) -> None:
        """Close the shared client; safe to call more than once."""
        client, self._client = self._client, None
        if client is not None and not client.is_closed:
            logger.debug("Closing upstream HTTP client")
            await client.aclose()

    async def __aenter__(self) -> Self:
        await self._get_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
