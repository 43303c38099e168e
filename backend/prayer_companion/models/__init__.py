from .core import (
    CacheEntry,
    CacheStats,
    FetchResult,
    GroundingSource,
    LoadingPhase,
    Prayer,
    PrayerRequest,
    PrayerResult,
    Tradition,
)
from .errors import (
    AppError,
    ErrorCode,
    FetchCancelled,
    InvalidResponse,
    PrayerFetchError,
    RecoveryOption,
    TransientFailure,
)

__all__ = [
    "CacheEntry",
    "CacheStats",
    "FetchResult",
    "GroundingSource",
    "LoadingPhase",
    "Prayer",
    "PrayerRequest",
    "PrayerResult",
    "Tradition",
    "AppError",
    "ErrorCode",
    "FetchCancelled",
    "InvalidResponse",
    "PrayerFetchError",
    "RecoveryOption",
    "TransientFailure",
]
