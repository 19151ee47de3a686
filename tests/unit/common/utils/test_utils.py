"""Tests for project metadata loading."""

import pytest
import tomli

from wavebridge_api.common.utils.utils import DEFAULT_METADATA, get_project_metadata, load_toml


@pytest.fixture(autouse=True)
def clear_metadata_cache():
    get_project_metadata.cache_clear()
    yield
    get_project_metadata.cache_clear()


def test_reads_project_table(tmp_path):
    """Test that name, version and description come from the project table."""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text('[project]\nname = "demo"\nversion = "2.1.0"\ndescription = "Demo"\n', encoding="utf-8")

    metadata = get_project_metadata(pyproject)

    assert metadata.name == "demo"
    assert metadata.version == "2.1.0"
    assert metadata.description == "Demo"


def test_missing_file_uses_defaults(tmp_path):
    """Test that a missing pyproject falls back to built-in metadata."""
    assert get_project_metadata(tmp_path / "absent.toml") == DEFAULT_METADATA


def test_malformed_file_uses_defaults(tmp_path):
    """Test that invalid TOML or a missing project table falls back."""
    broken = tmp_path / "broken.toml"
    broken.write_text("[project\nname = ", encoding="utf-8")
    assert get_project_metadata(broken) == DEFAULT_METADATA

    no_project = tmp_path / "tool.toml"
    no_project.write_text('[tool.ruff]\nline-length = 120\n', encoding="utf-8")
    assert get_project_metadata(no_project) == DEFAULT_METADATA


def test_load_toml_propagates_errors(tmp_path):
    """Test that load_toml leaves error handling to callers."""
    with pytest.raises(FileNotFoundError):
        load_toml(tmp_path / "absent.toml")

    broken = tmp_path / "broken.toml"
    broken.write_text("= nope", encoding="utf-8")
    with pytest.raises(tomli.TOMLDecodeError):
        load_toml(broken)
