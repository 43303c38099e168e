"""In-memory LRU cache with TTL expiration.

Entries expire a fixed TTL after they were created (checked lazily on read,
there is no background sweep). Reads refresh recency; inserts evict the least
recently used entries once the cache is over capacity.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

V = TypeVar("V")


@dataclass
class CacheSlot(Generic[V]):
    """A cached value with its creation and last access times."""

    value: V
    created_at: float
    last_accessed_at: float


class LRUCache(Generic[V]):
    """TTL-aware LRU cache with an injectable clock."""

    def __init__(
        self,
        max_size: int = 50,
        ttl_seconds: float = 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._cache: OrderedDict[str, CacheSlot[V]] = OrderedDict()
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        return key in self._cache

    def get(self, key: str) -> V | None:
        """Return a fresh value and mark it most recently used.

        An expired entry is removed and reported as absent.
        """
        slot = self._cache.get(key)
        if slot is None:
            return None
        now = self._clock()
        if now - slot.created_at > self._ttl:
            del self._cache[key]
            return None
        slot.last_accessed_at = now
        self._cache.move_to_end(key)
        return slot.value

    def set(self, key: str, value: V) -> list[str]:
        """Insert or overwrite ``key``. Returns the keys evicted to make room."""
        now = self._clock()
        self._cache[key] = CacheSlot(value=value, created_at=now, last_accessed_at=now)
        self._cache.move_to_end(key)
        return self._evict_overflow()

    def clear(self) -> None:
        self._cache.clear()

    def items(self) -> list[tuple[str, CacheSlot[V]]]:
        """Snapshot of the entries, least recently used first."""
        return list(self._cache.items())

    def load(self, items: Iterable[tuple[str, CacheSlot[V]]]) -> list[str]:
        """Replace the contents with previously saved slots.

        Slots are ordered by last access so recency survives a restart.
        Returns any keys dropped because the snapshot exceeds capacity.
        """
        ordered = sorted(items, key=lambda item: item[1].last_accessed_at)
        self._cache = OrderedDict(ordered)
        return self._evict_overflow()

    def _evict_overflow(self) -> list[str]:
        evicted: list[str] = []
        while len(self._cache) > self._max_size:
            old_key, _ = self._cache.popitem(last=False)
            evicted.append(old_key)
        return evicted
