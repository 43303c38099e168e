"""Prayer fetcher: cache-first retrieval with retry and cancellation."""

from .cancellation import CancellationToken, RequestCoordinator
from .service import (
    BackoffPolicy,
    FetchState,
    PrayerFetcher,
    create_prayer_fetcher,
)

__all__ = [
    "BackoffPolicy",
    "CancellationToken",
    "FetchState",
    "PrayerFetcher",
    "RequestCoordinator",
    "create_prayer_fetcher",
]
