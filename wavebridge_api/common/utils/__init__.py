from wavebridge_api.common.utils.http_client import BaseHttpxClient
from wavebridge_api.common.utils.utils import (
    ProjectMetadata,
    get_project_metadata,
    load_toml,
)

__all__ = [
    "BaseHttpxClient",
    "ProjectMetadata",
    "get_project_metadata",
    "load_toml",
]
