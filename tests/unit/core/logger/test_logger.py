"""Tests for logger naming."""

from wavebridge_api.core.logger.logger import ROOT_LOGGER_NAME, get_logger


def test_root_logger():
    assert get_logger().name == ROOT_LOGGER_NAME
    assert get_logger(ROOT_LOGGER_NAME).name == ROOT_LOGGER_NAME


def test_short_and_full_names_agree():
    """Test that __name__ and the short dotted form give the same logger."""
    short = get_logger("modules.catalog.cache")
    full = get_logger("wavebridge_api.modules.catalog.cache")
    assert short is full
    assert short.name == "wavebridge_api.modules.catalog.cache"
