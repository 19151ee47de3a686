"""Explicit owner of the resilience layer's state.

One :class:`ResilienceContext` holds the executor, cache, deduplicator,
durable store, source registry, proxy client, stream resolver and catalog
service. Nothing is module-level, so tests can build independent instances.
"""

from contextlib import AsyncExitStack
from typing import Any, Self

from wavebridge_api.core.logger import get_logger
from wavebridge_api.core.settings import Settings
from wavebridge_api.modules.catalog.cache import TieredCache
from wavebridge_api.modules.catalog.dedup import RequestDeduplicator
from wavebridge_api.modules.catalog.executor import RetryingExecutor
from wavebridge_api.modules.catalog.proxy import MediaProxy
from wavebridge_api.modules.catalog.resolver import StreamResolver
from wavebridge_api.modules.catalog.schemas import SourceDescriptor
from wavebridge_api.modules.catalog.service import CatalogService
from wavebridge_api.modules.catalog.sources import SourceRegistry
from wavebridge_api.modules.catalog.storage import KeyValueStore, create_store

# Initialize module logger
logger = get_logger("modules.catalog.context")


def _descriptors(entries: list[dict[str, str]]) -> list[SourceDescriptor]:
    return [SourceDescriptor(name=entry["name"], url=entry["url"]) for entry in entries]


class ResilienceContext:
    """Builds and owns every collaborator of the catalog.

    Use it as an async context manager: entering starts the cache sweeper,
    exiting stops it and closes the HTTP client and the durable store.
    """

    def __init__(
        self,
        settings: Settings,
        executor: RetryingExecutor | None = None,
        store: KeyValueStore | None = None,
        cache: TieredCache | None = None,
        deduplicator: RequestDeduplicator | None = None,
        registry: SourceRegistry | None = None,
        proxy: MediaProxy | None = None,
    ) -> None:
        """Initialize the context, building collaborators that were not given.

        Args:
            settings: Application settings
            executor: Request executor
            store: Durable key-value store
            cache: Tiered cache
            deduplicator: Request deduplicator
            registry: Source registry
            proxy: Media proxy client
        """
        self.settings = settings
        self.executor = executor or RetryingExecutor(
            timeout=settings.request_timeout,
            probe_timeout=settings.probe_timeout,
            max_retries=settings.max_retries,
            headers={"User-Agent": settings.user_agent},
        )
        self.store = store or create_store(settings.store_backend, settings.redis_url, settings.store_key_prefix)
        self.cache = cache or TieredCache(
            max_size=settings.cache_max_size,
            hot_threshold=settings.cache_hot_threshold,
            sweep_interval=settings.cache_sweep_interval,
        )
        self.deduplicator = deduplicator or RequestDeduplicator()
        self.registry = registry or SourceRegistry(
            sources=_descriptors(settings.api_sources),
            executor=self.executor,
            store=self.store,
            playback_sources=_descriptors(settings.playback_sources),
            preference_key=settings.preference_key,
            probe_timeout=settings.probe_timeout,
        )
        self.proxy = proxy or MediaProxy(
            endpoint=settings.proxy_endpoint,
            enabled=settings.use_proxy,
            proxy_sources=settings.proxy_sources,
            auto_https=settings.proxy_auto_https,
        )
        self.resolver = StreamResolver(
            registry=self.registry,
            executor=self.executor,
            cache=self.cache,
            proxy=self.proxy,
            degrey_api_url=settings.degrey_api_url,
            degrey_platforms=settings.degrey_platforms,
            degrey_search_count=settings.degrey_search_count,
            probe_timeout=settings.probe_timeout,
        )
        self.service = CatalogService(
            registry=self.registry,
            executor=self.executor,
            cache=self.cache,
            deduplicator=self.deduplicator,
            resolver=self.resolver,
        )
        self._exit_stack: AsyncExitStack | None = None

    async def __aenter__(self) -> Self:
        """Start background work and register cleanup.

        Returns:
            Self reference for chaining
        """
        self._exit_stack = AsyncExitStack()
        await self._exit_stack.__aenter__()

        await self._exit_stack.enter_async_context(self.executor)
        self._exit_stack.push_async_callback(self.store.close)
        self._exit_stack.push_async_callback(self.cache.stop_sweeper)
        self.cache.start_sweeper()

        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Stop the sweeper and release network resources."""
        if self._exit_stack is not None:
            await self._exit_stack.__aexit__(exc_type, exc_val, exc_tb)
            self._exit_stack = None
        self.deduplicator.clear()
        logger.debug("Resilience context closed")

    async def start(self) -> SourceDescriptor | None:
        """Restore the persisted source, or discover a working one.

        Returns:
            The active source, or None when no source responded
        """
        source = await self.registry.restore_preferred()
        if source is None:
            logger.error("No API source responded at startup, keeping %s", self.registry.active_source.name)
        return source


def create_context(settings: Settings) -> ResilienceContext:
    """Build a context wired from application settings."""
    return ResilienceContext(settings)
