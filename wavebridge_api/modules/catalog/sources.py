"""Backend source registry with health probing and failover."""

import asyncio
import time
from collections.abc import Callable, Sequence
from logging import Logger

from wavebridge_api.core.logger import get_logger
from wavebridge_api.modules.catalog.constants import ERROR_MESSAGES
from wavebridge_api.modules.catalog.dialects import detect_format, get_dialect
from wavebridge_api.modules.catalog.executor import RetryingExecutor
from wavebridge_api.modules.catalog.schemas import (
    SourceCapabilities,
    SourceChangeEvent,
    SourceChangeReason,
    SourceDescriptor,
    SourceStatus,
    SourceTestResult,
)
from wavebridge_api.modules.catalog.storage import KeyValueStore

# Initialize module logger
logger: Logger = get_logger("modules.catalog.sources")

SourceChangeListener = Callable[[SourceChangeEvent], None]


class SourceRegistry:
    """Ordered backend list with exactly one active source.

    The active index changes only through :meth:`find_working_source`,
    :meth:`switch_to_next`, :meth:`switch_to` and :meth:`restore_preferred`.
    Every change is broadcast to subscribed listeners; a failing listener is
    logged and does not affect the others.
    """

    def __init__(
        self,
        sources: Sequence[SourceDescriptor],
        executor: RetryingExecutor,
        store: KeyValueStore,
        playback_sources: Sequence[SourceDescriptor] | None = None,
        preference_key: str = "preferredApiIndex",
        probe_timeout: float = 3.0,
    ) -> None:
        """Initialize the registry.

        Args:
            sources: General-purpose backends in priority order
            executor: Executor used for health probes
            store: Durable store for the preferred index
            playback_sources: Backends tried for stream resolution, defaults
                to ``sources``
            preference_key: Store key of the preferred index
            probe_timeout: Health probe timeout in seconds

        Raises:
            ValueError: If no sources are given
        """
        if not sources:
            msg = "At least one API source is required"
            raise ValueError(msg)
        self._sources = tuple(sources)
        self._playback_sources = tuple(playback_sources or sources)
        self._executor = executor
        self._store = store
        self._preference_key = preference_key
        self._probe_timeout = probe_timeout
        self._active_index = 0
        self._listeners: list[SourceChangeListener] = []

    @property
    def sources(self) -> tuple[SourceDescriptor, ...]:
        return self._sources

    @property
    def playback_sources(self) -> tuple[SourceDescriptor, ...]:
        return self._playback_sources

    @property
    def active_index(self) -> int:
        return self._active_index

    @property
    def active_source(self) -> SourceDescriptor:
        return self._sources[self._active_index]

    @property
    def active_url(self) -> str:
        return self.active_source.url

    def subscribe(self, listener: SourceChangeListener) -> Callable[[], None]:
        """Register a listener for source changes.

        Args:
            listener: Callable receiving a :class:`SourceChangeEvent`

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: SourceChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Source change listener %r failed", listener)

    async def _activate(self, index: int, reason: SourceChangeReason, persist: bool) -> None:
        previous = self._active_index
        self._active_index = index
        source = self._sources[index]
        logger.info("Active API source is now %s (%s, reason=%s)", source.name, source.url, reason.value)

        if persist:
            await self._store.set(self._preference_key, index)

        self._notify(
            SourceChangeEvent(
                previous_index=previous,
                current_index=index,
                source=source,
                reason=reason,
            ),
        )

    async def test_source(self, source: SourceDescriptor) -> bool:
        """Probe a backend with a lightweight search.

        Args:
            source: Backend to probe

        Returns:
            True when the probe answered with a 2xx status
        """
        request = get_dialect(source.url).health_check(source.url)
        status = await self._executor.probe(request.url, params=request.params, timeout=self._probe_timeout)
        healthy = status is not None and 200 <= status < 300
        logger.debug("Health probe of %s: status=%s healthy=%s", source.name, status, healthy)
        return healthy

    async def find_working_source(self) -> SourceDescriptor | None:
        """Activate and persist the first healthy backend in list order.

        Returns:
            The activated backend, or None when none responded
        """
        for index, source in enumerate(self._sources):
            if await self.test_source(source):
                await self._activate(index, SourceChangeReason.DISCOVERY, persist=True)
                return source

        logger.error(ERROR_MESSAGES["NO_WORKING_SOURCE"])
        return None

    async def switch_to_next(self) -> bool:
        """Fail over to the next healthy backend after the active one.

        Backends are probed cyclically starting just after the active index;
        the active backend itself is not retried.

        Returns:
            True when a healthy backend was activated
        """
        count = len(self._sources)
        for offset in range(1, count):
            index = (self._active_index + offset) % count
            source = self._sources[index]
            if await self.test_source(source):
                await self._activate(index, SourceChangeReason.FAILOVER, persist=False)
                return True

        logger.error("Failover from %s found no healthy API source", self.active_source.name)
        return False

    async def switch_to(self, index: int) -> bool:
        """Explicitly select a backend, committing only if it is healthy.

        Args:
            index: Position in the general-purpose source list

        Returns:
            True when the backend responded and was activated

        Raises:
            ValueError: If the index is out of range
        """
        if not 0 <= index < len(self._sources):
            raise ValueError(ERROR_MESSAGES["INVALID_SOURCE_INDEX"].format(index=index))

        source = self._sources[index]
        if not await self.test_source(source):
            logger.warning(ERROR_MESSAGES["SOURCE_UNREACHABLE"].format(name=source.name))
            return False

        await self._activate(index, SourceChangeReason.MANUAL, persist=True)
        return True

    async def restore_preferred(self) -> SourceDescriptor | None:
        """Re-activate the persisted backend, or discover one if it is gone.

        Returns:
            The activated backend, or None when none responded
        """
        stored = await self._store.get(self._preference_key)
        if isinstance(stored, int) and not isinstance(stored, bool) and 0 <= stored < len(self._sources):
            source = self._sources[stored]
            if await self.test_source(source):
                await self._activate(stored, SourceChangeReason.RESTORE, persist=False)
                return source
            logger.warning("Preferred API source %s no longer responds", source.name)

        return await self.find_working_source()

    def detect_capabilities(self, api_url: str | None = None) -> SourceCapabilities:
        """Return the operations the backend's dialect supports."""
        return get_dialect(api_url or self.active_url).capabilities

    def list_sources(self) -> list[SourceStatus]:
        return [
            SourceStatus(
                index=index,
                name=source.name,
                url=source.url,
                dialect=detect_format(source.url).value,
                active=index == self._active_index,
            )
            for index, source in enumerate(self._sources)
        ]

    def current_status(self) -> SourceStatus:
        return self.list_sources()[self._active_index]

    async def _test_with_latency(self, index: int, source: SourceDescriptor) -> SourceTestResult:
        started = time.perf_counter()
        healthy = await self.test_source(source)
        latency_ms = (time.perf_counter() - started) * 1000
        return SourceTestResult(
            index=index,
            name=source.name,
            url=source.url,
            dialect=detect_format(source.url).value,
            healthy=healthy,
            latency_ms=round(latency_ms, 2) if healthy else None,
            capabilities=self.detect_capabilities(source.url),
        )

    async def test_all_sources(self) -> list[SourceTestResult]:
        """Probe every backend concurrently."""
        return list(
            await asyncio.gather(
                *(self._test_with_latency(index, source) for index, source in enumerate(self._sources)),
            ),
        )
