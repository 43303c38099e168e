"""Key-value storage backends for persisted caches."""

from .service import (
    CacheStorage,
    FileCacheStorage,
    MemoryCacheStorage,
    RedisCacheStorage,
    create_cache_storage,
)

__all__ = [
    "CacheStorage",
    "FileCacheStorage",
    "MemoryCacheStorage",
    "RedisCacheStorage",
    "create_cache_storage",
]
