"""Prayer Companion Services.

Service layer components:
- Cache: storage backends (file, Redis, memory) for persisted caches
- Prayer Cache: TTL + LRU cache of generated prayer sets
- Prayer Generator: Gemini (primary) + Groq (fallback) prayer generation
- Prayer Fetcher: cache-first retrieval with retry, backoff and cancellation
- Community: flat-file community prayer wall
"""

from .cache import (
    CacheStorage,
    FileCacheStorage,
    MemoryCacheStorage,
    RedisCacheStorage,
    create_cache_storage,
)
from .prayer_cache import PrayerCache
from .prayer_generator import (
    GeminiPrayerGenerator,
    GroqPrayerGenerator,
    PrayerGeneratorService,
    create_prayer_generator,
)
from .prayer_fetcher import (
    BackoffPolicy,
    CancellationToken,
    PrayerFetcher,
    RequestCoordinator,
    create_prayer_fetcher,
)
from .community import CommunityPrayerService

__all__ = [
    # Cache storage
    "CacheStorage",
    "FileCacheStorage",
    "MemoryCacheStorage",
    "RedisCacheStorage",
    "create_cache_storage",
    # Prayer cache
    "PrayerCache",
    # Generators
    "GeminiPrayerGenerator",
    "GroqPrayerGenerator",
    "PrayerGeneratorService",
    "create_prayer_generator",
    # Fetcher
    "BackoffPolicy",
    "CancellationToken",
    "PrayerFetcher",
    "RequestCoordinator",
    "create_prayer_fetcher",
    # Community
    "CommunityPrayerService",
]
