"""Global pytest configuration.

This file contains pytest configuration and fixtures shared across all tests.
"""

from typing import Any

import httpx
import pytest

from wavebridge_api.modules.catalog.schemas import Song, SourceDescriptor


def pytest_addoption(parser):
    """Add command-line options to pytest."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    # Register custom markers
    config.addinivalue_line("markers", "integration: mark a test as an integration test requiring external services")
    config.addinivalue_line("markers", "slow: mark a test as slow running")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration option is used."""
    if config.getoption("--run-integration"):
        # Integration tests requested, don't skip
        return

    # Skip integration tests
    skip_integration = pytest.mark.skip(reason="Need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


def _make_response(status_code: int = 200, json_data: Any = None, url: str = "https://api.example.com/") -> httpx.Response:
    return httpx.Response(status_code, json=json_data, request=httpx.Request("GET", url))


@pytest.fixture
def make_response():
    """Return a factory building httpx responses bound to a request."""
    return _make_response


@pytest.fixture
def sample_song() -> Song:
    """Create a NetEase song for testing."""
    return Song(
        id="186016",
        name="晴天",
        artist=["周杰伦"],
        album="叶惠美",
        pic_id="109951163071293579",
        source="netease",
        duration=269.0,
    )


@pytest.fixture
def sample_sources() -> list[SourceDescriptor]:
    """Create one source per dialect for testing."""
    return [
        SourceDescriptor(name="NCM", url="https://music888.zeabur.app/"),
        SourceDescriptor(name="Meting", url="https://api.injahow.cn/meting/"),
        SourceDescriptor(name="GDStudio", url="https://music-api.gdstudio.xyz/api.php"),
    ]
