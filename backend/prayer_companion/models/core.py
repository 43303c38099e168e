"""Core data models for Prayer Companion.

This module contains the Pydantic models shared by the cache, the fetch
orchestrator, the AI generators and the HTTP layer.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Tradition(str, Enum):
    """Religious or contemplative traditions prayers can be drawn from."""

    CHRISTIANITY = "Christianity"
    ISLAM = "Islam"
    JUDAISM = "Judaism"
    HINDUISM = "Hinduism"
    BUDDHISM = "Buddhism"
    SIKHISM = "Sikhism"
    BAHAI = "Baha'i Faith"
    SPIRITUAL = "General Spirituality"
    SECULAR = "Secular / Mindfulness"


class LoadingPhase(str, Enum):
    """Progress phases reported while a prayer set is being generated."""

    SEARCHING = "searching"
    GENERATING = "generating"
    FINALIZING = "finalizing"


class Prayer(BaseModel):
    """A single prayer, scripture passage or mantra."""

    title: str = Field(..., min_length=1, description="Traditional name or descriptive title")
    body: str = Field(..., min_length=1, description="Full text of the prayer")
    explanation: str = Field(..., description="Where the text comes from and why it fits")
    is_canonical: bool = Field(
        ..., description="True for verbatim scripture/liturgy, False for a tradition-aligned composition"
    )
    origin_label: Optional[str] = Field(
        None, description="Specific text or historical source, e.g. 'Psalm 23'"
    )


class GroundingSource(BaseModel):
    """A web page the generator cited while searching."""

    title: str = "Religious Source"
    uri: str = ""


class PrayerResult(BaseModel):
    """A complete generation result: exactly three prayers plus citations."""

    prayers: list[Prayer] = Field(..., min_length=3, max_length=3)
    sources: list[GroundingSource] = Field(default_factory=list)


class CacheEntry(BaseModel):
    """A persisted prayer cache entry. Timestamps are epoch seconds."""

    key: str
    payload: PrayerResult
    created_at: float
    last_accessed_at: float


class CacheStats(BaseModel):
    """Counters describing prayer cache behaviour."""

    hits: int = 0
    misses: int = 0
    expirations: int = 0
    evictions: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class FetchResult(BaseModel):
    """What callers get back from a prayer fetch."""

    prayers: list[Prayer]
    sources: list[GroundingSource] = Field(default_factory=list)
    served_from_cache: bool = False


class PrayerRequest(BaseModel):
    """An intention posted to the community prayer wall."""

    id: str
    intention: str = Field(..., min_length=1, max_length=280)
    religion: str
    is_anonymous: bool = True
    timestamp: int = Field(..., description="Creation time in epoch milliseconds")
    prayer_count: int = Field(0, ge=0)
