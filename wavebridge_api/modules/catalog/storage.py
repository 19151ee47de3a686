"""Durable key-value stores for state that outlives the process.

The catalog only needs get/set/remove-by-key, for example to remember the
preferred backend index between restarts. Values are JSON serialized.
"""

import json
from logging import Logger
from typing import Any, Protocol, runtime_checkable

import redis
from redis.asyncio.client import Redis

from wavebridge_api.core.logger import get_logger

# Initialize logger
logger: Logger = get_logger(module_name="modules.catalog.storage")


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal async key-value store."""

    async def get(self, key: str, default: Any = None) -> Any: ...

    async def set(self, key: str, value: Any) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def close(self) -> None: ...


class MemoryStore:
    """Process-local store, used when no durable backend is configured."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str, default: Any = None) -> Any:
        value = self._data.get(key)
        if value is None:
            return default
        return json.loads(value)

    async def set(self, key: str, value: Any) -> bool:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning("Cannot serialize value for key %s: %s", key, str(e))
            return False
        return True

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def close(self) -> None:
        return None


class RedisStore:
    """Redis-backed store.

    Redis errors are logged and reported as a miss or a failed write so a
    Redis outage degrades to non-persistent behavior instead of failing
    catalog requests.
    """

    def __init__(self, redis_url: str, key_prefix: str = "wavebridge:") -> None:
        """Initialize Redis store with connection parameters.

        Args:
            redis_url: Redis connection URL
            key_prefix: Prefix applied to every key
        """
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._client: Redis | None = None

    @property
    def client(self) -> Redis:
        """Get or create the asynchronous Redis client."""
        if self._client is None:
            self._client = Redis.from_url(  # pyright: ignore[reportUnknownMemberType]
                self.redis_url,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
                retry_on_timeout=True,
            )
        return self._client

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str, default: Any = None) -> Any:
        """Retrieve a value with safe deserialization.

        Args:
            key: Store key without prefix
            default: Value returned when the key is missing or unreadable

        Returns:
            Stored value or default
        """
        try:
            value = await self.client.get(self._key(key))
        except redis.RedisError as e:
            logger.warning("Redis error when getting key %s: %s", key, str(e))
            return default

        if value is None:
            return default
        try:
            return json.loads(value)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Failed to deserialize value for key %s: %s", key, str(e))
            return default

    async def set(self, key: str, value: Any) -> bool:
        """Persist a value without expiry.

        Args:
            key: Store key without prefix
            value: JSON-serializable value

        Returns:
            True if successful, False otherwise
        """
        try:
            serialized = json.dumps(value).encode("utf-8")
        except (TypeError, ValueError) as e:
            logger.warning("Cannot serialize value for key %s: %s", key, str(e))
            return False

        try:
            await self.client.set(self._key(key), serialized)
        except redis.RedisError as e:
            logger.warning("Redis error when setting key %s: %s", key, str(e))
            return False
        return True

    async def delete(self, key: str) -> bool:
        """Delete a key, returning whether it existed."""
        try:
            return bool(await self.client.delete(self._key(key)))
        except redis.RedisError as e:
            logger.warning("Redis error when deleting key %s: %s", key, str(e))
            return False

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._client is not None:
            try:
                await self._client.aclose()
            except redis.RedisError as e:
                logger.warning("Error closing Redis client: %s", str(e))
            finally:
                self._client = None


def create_store(backend: str, redis_url: str, key_prefix: str = "wavebridge:") -> KeyValueStore:
    """Build the configured store.

    Args:
        backend: ``"redis"`` or ``"memory"``
        redis_url: Redis connection URL, used for the redis backend
        key_prefix: Key prefix, used for the redis backend

    Returns:
        Store instance

    Raises:
        ValueError: If the backend name is unknown
    """
    if backend == "redis":
        return RedisStore(redis_url, key_prefix)
    if backend == "memory":
        return MemoryStore()
    msg = f"Unknown store backend: {backend}"
    raise ValueError(msg)
