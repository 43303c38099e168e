"""Community prayer wall."""

from .service import (
    AlreadyPrayed,
    CommunityError,
    CommunityPrayerService,
    InvalidPrayerRequest,
    PrayerNotFound,
    RateLimitExceeded,
)

__all__ = [
    "AlreadyPrayed",
    "CommunityError",
    "CommunityPrayerService",
    "InvalidPrayerRequest",
    "PrayerNotFound",
    "RateLimitExceeded",
]
