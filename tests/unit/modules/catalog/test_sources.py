"""Tests for the source registry."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from wavebridge_api.modules.catalog.executor import RetryingExecutor
from wavebridge_api.modules.catalog.schemas import SourceChangeReason
from wavebridge_api.modules.catalog.sources import SourceRegistry
from wavebridge_api.modules.catalog.storage import MemoryStore


@pytest.fixture
def executor():
    """Return an executor whose probes are scripted per source."""
    executor = MagicMock(spec=RetryingExecutor)
    executor.probe = AsyncMock(return_value=200)
    return executor


@pytest.fixture
def store():
    """Return an in-memory durable store."""
    return MemoryStore()


@pytest.fixture
def registry(sample_sources, executor, store):
    """Return a registry over one source per dialect."""
    return SourceRegistry(sample_sources, executor, store)


def script_health(executor, sources, healthy: set[int]) -> None:
    """Make probes of the given source indexes succeed and the rest fail."""

    async def probe(url, **kwargs):
        for index, source in enumerate(sources):
            if url.startswith(source.url.rstrip("/")):
                return 200 if index in healthy else None
        return None

    executor.probe.side_effect = probe


def test_requires_sources(executor, store):
    """Test that an empty source list is rejected."""
    with pytest.raises(ValueError):
        SourceRegistry([], executor, store)


@pytest.mark.asyncio
async def test_test_source_status_ranges(registry, executor, sample_sources):
    """Test that only 2xx probes count as healthy."""
    executor.probe.return_value = 204
    assert await registry.test_source(sample_sources[0])

    executor.probe.return_value = 503
    assert not await registry.test_source(sample_sources[0])

    executor.probe.return_value = None
    assert not await registry.test_source(sample_sources[0])


@pytest.mark.asyncio
async def test_find_working_source_persists(registry, executor, store, sample_sources):
    """Test that discovery activates the first healthy source and stores it."""
    script_health(executor, sample_sources, healthy={1, 2})

    assert await registry.find_working_source() == sample_sources[1]
    assert registry.active_index == 1
    assert await store.get("preferredApiIndex") == 1


@pytest.mark.asyncio
async def test_find_working_source_none_healthy(registry, executor, store, sample_sources):
    """Test that the active index is kept when nothing responds."""
    script_health(executor, sample_sources, healthy=set())

    assert await registry.find_working_source() is None
    assert registry.active_index == 0
    assert await store.get("preferredApiIndex") is None


@pytest.mark.asyncio
async def test_switch_to_next_is_cyclic_and_not_persisted(registry, executor, store, sample_sources):
    """Test that failover wraps around, skips the active source and does not persist."""
    await registry.switch_to(2)
    await store.delete("preferredApiIndex")
    script_health(executor, sample_sources, healthy={1, 2})
    executor.probe.reset_mock()

    assert await registry.switch_to_next()

    assert registry.active_index == 1
    probed = [call.args[0] for call in executor.probe.await_args_list]
    assert not any(url.startswith(sample_sources[2].url) for url in probed)
    assert await store.get("preferredApiIndex") is None


@pytest.mark.asyncio
async def test_switch_to_next_fails_when_only_active_is_healthy(registry, executor, sample_sources):
    """Test that failover does not fall back onto the active source."""
    script_health(executor, sample_sources, healthy={0})

    assert not await registry.switch_to_next()
    assert registry.active_index == 0


@pytest.mark.asyncio
async def test_switch_to(registry, executor, store, sample_sources):
    """Test explicit selection with validation and persistence."""
    with pytest.raises(ValueError, match="无效的API索引"):
        await registry.switch_to(3)
    with pytest.raises(ValueError):
        await registry.switch_to(-1)

    script_health(executor, sample_sources, healthy={2})
    assert not await registry.switch_to(1)
    assert registry.active_index == 0

    assert await registry.switch_to(2)
    assert registry.active_url == sample_sources[2].url
    assert await store.get("preferredApiIndex") == 2


@pytest.mark.asyncio
async def test_restore_preferred(registry, executor, store, sample_sources):
    """Test that a healthy stored preference is reused."""
    await store.set("preferredApiIndex", 2)

    assert await registry.restore_preferred() == sample_sources[2]
    assert registry.active_index == 2


@pytest.mark.asyncio
async def test_restore_preferred_falls_back_to_discovery(registry, executor, store, sample_sources):
    """Test that an unhealthy or invalid preference triggers discovery."""
    await store.set("preferredApiIndex", 2)
    script_health(executor, sample_sources, healthy={1})

    assert await registry.restore_preferred() == sample_sources[1]
    assert await store.get("preferredApiIndex") == 1

    await store.set("preferredApiIndex", 99)
    assert await registry.restore_preferred() == sample_sources[1]


@pytest.mark.asyncio
async def test_listeners_are_isolated(registry, sample_sources):
    """Test that a failing listener does not stop later listeners."""
    events = []

    def broken(event):
        raise RuntimeError("listener bug")

    registry.subscribe(broken)
    unsubscribe = registry.subscribe(events.append)

    await registry.switch_to(1)

    assert len(events) == 1
    assert events[0].previous_index == 0
    assert events[0].current_index == 1
    assert events[0].source == sample_sources[1]
    assert events[0].reason is SourceChangeReason.MANUAL

    unsubscribe()
    unsubscribe()
    await registry.switch_to(2)
    assert len(events) == 1


@pytest.mark.asyncio
async def test_list_and_capabilities(registry):
    """Test the source listing and dialect capabilities."""
    await registry.switch_to(2)

    listing = registry.list_sources()
    assert [status.dialect for status in listing] == ["ncm", "meting", "gdstudio"]
    assert [status.active for status in listing] == [False, False, True]
    assert registry.current_status().name == "GDStudio"
    assert registry.detect_capabilities(listing[0].url).comments


@pytest.mark.asyncio
async def test_test_all_sources(registry, executor, sample_sources):
    """Test that every source is probed and reported."""
    script_health(executor, sample_sources, healthy={0, 2})

    results = await registry.test_all_sources()

    assert [result.healthy for result in results] == [True, False, True]
    assert results[1].latency_ms is None
    assert results[0].latency_ms is not None
