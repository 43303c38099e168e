"""Cache storage backends.

This module provides an abstract key-value storage interface and three
concrete backends used to persist the prayer cache record:

- ``FileCacheStorage``: one JSON file per key in a local directory
  (default, survives restarts of a single instance)
- ``RedisCacheStorage``: a Redis string per key (one record visible to all
  workers; writes are plain SETs, so concurrent writers race and the last
  one wins)
- ``MemoryCacheStorage``: a plain dict (tests, ephemeral deployments)

Backends store opaque strings. Encoding, versioning and expiry are the
responsibility of the caller.
"""

import asyncio
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path

import redis.asyncio as redis


class CacheStorage(ABC):
    """Abstract base class for cache storage backends."""

    async def connect(self) -> None:
        """Acquire any resources the backend needs. No-op by default."""

    async def close(self) -> None:
        """Release backend resources. No-op by default."""

    @abstractmethod
    async def read(self, key: str) -> str | None:
        """Retrieve the stored value for key.

        Args:
            key: The storage key to look up.

        Returns:
            The stored string if present, None otherwise.
        """
        pass

    @abstractmethod
    async def write(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value.

        Args:
            key: The storage key.
            value: The serialized value to store.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key.

        Args:
            key: The storage key to delete.

        Returns:
            True if the key was deleted, False if it didn't exist.
        """
        pass


class MemoryCacheStorage(CacheStorage):
    """Process-local storage backed by a dict."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def read(self, key: str) -> str | None:
        return self._data.get(key)

    async def write(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class FileCacheStorage(CacheStorage):
    """Stores each key as ``<directory>/<key>.json``.

    Writes go to a temporary file that is then renamed over the target, so
    a crash mid-write never leaves a truncated record behind.
    """

    _SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path_for(self, key: str) -> Path:
        return self._directory / f"{self._SAFE_KEY.sub('_', key)}.json"

    async def connect(self) -> None:
        await asyncio.to_thread(self._directory.mkdir, parents=True, exist_ok=True)

    async def read(self, key: str) -> str | None:
        path = self._path_for(key)

        def _read() -> str | None:
            if not path.exists():
                return None
            return path.read_text(encoding="utf-8")

        return await asyncio.to_thread(_read)

    async def write(self, key: str, value: str) -> None:
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)

        await asyncio.to_thread(_write)

    async def delete(self, key: str) -> bool:
        path = self._path_for(key)

        def _delete() -> bool:
            try:
                path.unlink()
                return True
            except FileNotFoundError:
                return False

        return await asyncio.to_thread(_delete)


class RedisCacheStorage(CacheStorage):
    """Redis-based storage backend.

    Attributes:
        _client: The Redis async client instance.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379") -> None:
        """Initialize the Redis storage backend.

        Args:
            redis_url: Redis connection URL. Defaults to localhost:6379.
        """
        self._redis_url = redis_url
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """Establish connection to Redis."""
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _ensure_connected(self) -> redis.Redis:
        if self._client is None:
            await self.connect()
        return self._client  # type: ignore

    async def read(self, key: str) -> str | None:
        client = await self._ensure_connected()
        return await client.get(key)

    async def write(self, key: str, value: str) -> None:
        # No Redis-side TTL: entry expiry lives inside the record.
        client = await self._ensure_connected()
        await client.set(key, value)

    async def delete(self, key: str) -> bool:
        client = await self._ensure_connected()
        result = await client.delete(key)
        return result > 0


def create_cache_storage(
    backend: str,
    path: str | Path | None = None,
    redis_url: str | None = None,
) -> CacheStorage:
    """Build the storage backend named by ``backend``.

    Args:
        backend: One of ``"file"``, ``"redis"`` or ``"memory"``.
        path: Directory for the file backend.
        redis_url: Connection URL for the redis backend.

    Raises:
        ValueError: If the backend name is unknown or its setting is missing.
    """
    if backend == "memory":
        return MemoryCacheStorage()
    if backend == "file":
        if not path:
            raise ValueError("File cache backend requires a path")
        return FileCacheStorage(path)
    if backend == "redis":
        return RedisCacheStorage(redis_url or "redis://localhost:6379")
    raise ValueError(f"Unknown cache backend: {backend!r}")
