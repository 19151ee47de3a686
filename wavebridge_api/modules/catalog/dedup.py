"""Coalescing of concurrent identical upstream requests."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from wavebridge_api.core.logger import get_logger

# Initialize module logger
logger = get_logger("modules.catalog.dedup")

T = TypeVar("T")


class RequestDeduplicator:
    """Shares one in-flight fetch between all callers asking for the same key.

    A successful fetch stays registered for one more loop iteration so every
    waiter observes the result before the key is released. A failed or
    cancelled fetch is released as soon as it completes.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Task[Any]] = {}

    @property
    def active_count(self) -> int:
        """Number of fetches currently in flight."""
        return len(self._pending)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    async def dedupe(self, key: str, fetcher: Callable[[], Awaitable[T]]) -> T:
        """Run ``fetcher`` once per key among concurrent callers.

        Args:
            key: Identity of the request
            fetcher: Coroutine function performing the request

        Returns:
            The fetch result, shared by every concurrent caller

        Raises:
            Exception: Whatever the shared fetch raised
        """
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(fetcher())
            self._pending[key] = task
            task.add_done_callback(lambda done, key=key: self._on_done(key, done))
        else:
            logger.debug("Joining in-flight request for %s", key)

        # A cancelled caller must not cancel the fetch shared with other callers
        return await asyncio.shield(task)

    def _on_done(self, key: str, task: asyncio.Task[Any]) -> None:
        if task.cancelled() or task.exception() is not None:
            self._release(key, task)
        else:
            task.get_loop().call_soon(self._release, key, task)

    def _release(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]

    def clear(self) -> None:
        """Forget every in-flight fetch without cancelling them."""
        self._pending.clear()
