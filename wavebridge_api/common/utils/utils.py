from functools import lru_cache
from pathlib import Path
from typing import Any, NamedTuple

import tomli

from wavebridge_api.core.logger.logger import get_logger

# Initialize module logger
logger = get_logger("common.utils")

# Repository root, where pyproject.toml lives in a source checkout
PROJECT_ROOT = Path(__file__).resolve().parents[3]


class ProjectMetadata(NamedTuple):
    name: str
    version: str
    description: str


DEFAULT_METADATA = ProjectMetadata(
    name="wavebridge-api",
    version="0.1.0",
    description="Resilient aggregation API over incompatible third-party music catalog backends",
)


def load_toml(path: str | Path) -> dict[str, Any]:
    """Load and parse a TOML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        tomli.TOMLDecodeError: If the file contains invalid TOML
    """
    with Path(path).open("rb") as f:
        logger.debug("Loading TOML file: %s", path)
        return tomli.load(f)


@lru_cache(maxsize=1)
def get_project_metadata(path: str | Path | None = None) -> ProjectMetadata:
    """Read name, version and description from pyproject.toml.

    Installed wheels ship without pyproject.toml, so a missing or malformed
    file yields the built-in metadata instead of failing startup.

    Args:
        path: Explicit pyproject path; defaults to the one at the repository root

    Returns:
        Project metadata used for the OpenAPI document
    """
    pyproject = Path(path) if path is not None else PROJECT_ROOT / "pyproject.toml"
    try:
        project = load_toml(pyproject)["project"]
        return ProjectMetadata(project["name"], project["version"], project.get("description", ""))
    except FileNotFoundError:
        logger.debug("No pyproject.toml at %s, using built-in metadata", pyproject)
    except (KeyError, tomli.TOMLDecodeError) as e:
        logger.warning("Unreadable project metadata in %s: %r", pyproject, e)
    return DEFAULT_METADATA
