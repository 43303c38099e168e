"""Prayer cache: TTL + LRU, persisted through a storage backend."""

from .service import (
    CACHE_FORMAT_VERSION,
    CACHE_STORAGE_KEY,
    PrayerCache,
    normalize_text,
)

__all__ = [
    "CACHE_FORMAT_VERSION",
    "CACHE_STORAGE_KEY",
    "PrayerCache",
    "normalize_text",
]
