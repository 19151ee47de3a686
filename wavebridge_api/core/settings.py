import json
import os
from pathlib import Path
from typing import Any, ClassVar

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from wavebridge_api.core.logger import get_logger

# Initialize module logger
logger = get_logger("core.settings")


# Determine the environment file path
# Default path, can be overridden by environment variable
default_env_file = ".env"
settings_env_file_path = os.getenv("SETTINGS_ENV_FILE", default_env_file)
logger.debug(f"Loading settings from env file: {settings_env_file_path}")

DEFAULT_LOGGING: dict[str, Any] = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "file": "wavebridge.log",
}


def load_json(filename: str) -> dict[str, Any]:
    """Load and parse a JSON file.

    Args:
        filename: Path to the JSON file to load

    Returns:
        Parsed JSON data as a dictionary
    """
    with Path(filename).open(encoding="utf-8") as f:
        return json.load(f)


def _default_api_sources() -> list[dict[str, str]]:
    return [
        {"name": "我的 Zeabur API", "url": "https://music888.zeabur.app/"},
        {"name": "Wuenci API (Meting)", "url": "https://api.wuenci.com/meting/api/"},
        {"name": "Injahow API (Meting)", "url": "https://api.injahow.cn/meting/"},
        {"name": "GDStudio 主API", "url": "https://music-api.gdstudio.xyz/api.php"},
    ]


def _default_playback_sources() -> list[dict[str, str]]:
    return [
        {"name": "我的 Zeabur API", "url": "https://music888.zeabur.app/"},
        {"name": "Injahow API (Meting)", "url": "https://api.injahow.cn/meting/"},
        {"name": "GDStudio 主API", "url": "https://music-api.gdstudio.xyz/api.php"},
    ]


class Settings(BaseSettings):
    """Application settings loaded from environment variables and config file."""

    config_file: str = Field(default="data/config.json")
    server: dict[str, Any] = Field(default_factory=dict)
    cors: dict[str, Any] = Field(default_factory=dict)
    logging: dict[str, Any] = Field(default_factory=lambda: dict(DEFAULT_LOGGING))

    # Backend sources
    api_sources: list[dict[str, str]] = Field(default_factory=_default_api_sources)
    playback_sources: list[dict[str, str]] = Field(default_factory=_default_playback_sources)

    # Request execution
    request_timeout: float = Field(default=15.0)  # seconds per attempt
    probe_timeout: float = Field(default=3.0)  # seconds for health and range probes
    max_retries: int = Field(default=2)
    user_agent: str = Field(default="WaveBridge-API/0.1.0")

    # In-process cache
    cache_max_size: int = Field(default=150)
    cache_hot_threshold: int = Field(default=5)
    cache_sweep_interval: float = Field(default=60.0)  # seconds
    cache_warmup: bool = Field(default=True)

    # Durable key-value store
    store_backend: str = Field(default="memory")  # "memory" or "redis"
    redis_url: str = Field(default="redis://localhost:6379/1")
    store_key_prefix: str = Field(default="wavebridge:")
    preference_key: str = Field(default="preferredApiIndex")

    # Cross-platform substitution
    degrey_api_url: str = Field(default="https://music-api.gdstudio.xyz/api.php")
    degrey_platforms: list[str] = Field(default_factory=lambda: ["kugou", "kuwo", "tencent"])
    degrey_search_count: int = Field(default=10)

    # Media proxy contract
    use_proxy: bool = Field(default=False)
    proxy_endpoint: str = Field(default="/proxy")
    proxy_sources: list[str] = Field(default_factory=lambda: ["bilibili"])
    proxy_auto_https: bool = Field(default=True)

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=settings_env_file_path,
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._load_config_file()

    def _load_config_file(self) -> None:
        """Load configuration from config file."""
        try:
            # Load the JSON configuration file
            config_data = load_json(self.config_file)
            self.server = config_data.get("server", self.server)
            self.logging = {**DEFAULT_LOGGING, **config_data.get("logging", {})}
            self.cors = config_data.get("cors", self.cors)

            if "sources" in config_data:
                sources = config_data["sources"]
                self.api_sources = sources.get("api", self.api_sources)
                self.playback_sources = sources.get("playback", self.playback_sources)

            if "requests" in config_data:
                requests = config_data["requests"]
                self.request_timeout = requests.get("timeout", self.request_timeout)
                self.probe_timeout = requests.get("probe_timeout", self.probe_timeout)
                self.max_retries = requests.get("max_retries", self.max_retries)
                self.user_agent = requests.get("user_agent", self.user_agent)

            if "cache" in config_data:
                cache = config_data["cache"]
                self.cache_max_size = cache.get("max_size", self.cache_max_size)
                self.cache_hot_threshold = cache.get("hot_threshold", self.cache_hot_threshold)
                self.cache_sweep_interval = cache.get("sweep_interval", self.cache_sweep_interval)
                self.cache_warmup = cache.get("warmup", self.cache_warmup)

            if "store" in config_data:
                store = config_data["store"]
                self.store_backend = store.get("backend", self.store_backend)
                self.store_key_prefix = store.get("key_prefix", self.store_key_prefix)
                self.preference_key = store.get("preference_key", self.preference_key)

            if "redis" in config_data:
                self.redis_url = config_data["redis"].get("url", self.redis_url)

            if "degrey" in config_data:
                degrey = config_data["degrey"]
                self.degrey_api_url = degrey.get("api_url", self.degrey_api_url)
                self.degrey_platforms = degrey.get("platforms", self.degrey_platforms)
                self.degrey_search_count = degrey.get("search_count", self.degrey_search_count)

            if "proxy" in config_data:
                proxy = config_data["proxy"]
                self.use_proxy = proxy.get("enabled", self.use_proxy)
                self.proxy_endpoint = proxy.get("endpoint", self.proxy_endpoint)
                self.proxy_sources = proxy.get("sources", self.proxy_sources)
                self.proxy_auto_https = proxy.get("auto_https", self.proxy_auto_https)

            logger.debug("Configuration loaded from file: %s", self.config_file)

        except (FileNotFoundError, json.JSONDecodeError, PermissionError) as e:
            # Fall back to defaults if config file can't be loaded
            message = f"Error loading config file: {e}"
            logger.warning(message)


# Create a singleton instance
settings: Settings = Settings()
