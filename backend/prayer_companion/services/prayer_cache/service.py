"""Prayer cache manager.

Remembers generated prayer sets per (tradition, situation) so repeated
requests do not pay for another generation call.

- Keys are normalized: surrounding whitespace trimmed, case folded and
  interior whitespace runs collapsed, so "  I need Calm " and "i need  calm"
  share an entry.
- Entries expire 24h after creation. Expiry is checked lazily on lookup.
- At most 50 entries are kept; the least recently used are evicted on insert.
- The whole store is persisted as one versioned JSON record. A record that
  is malformed or carries another version loads as an empty cache. The
  record is re-read before every operation.

Caching is best effort: storage failures are logged and degrade to serving
from memory (on lookup) or to deferring persistence (on store). They never
propagate.
"""

import asyncio
import json
import logging
import time
from typing import Callable

from pydantic import ValidationError

from prayer_companion.models import CacheEntry, CacheStats, PrayerResult
from prayer_companion.services.cache import CacheStorage, MemoryCacheStorage
from prayer_companion.utils.cache import CacheSlot, LRUCache

logger = logging.getLogger(__name__)

CACHE_STORAGE_KEY = "prayer_cache_v1"
CACHE_FORMAT_VERSION = 1
DEFAULT_MAX_ENTRIES = 50
DEFAULT_TTL_SECONDS = 24 * 60 * 60


def normalize_text(text: str) -> str:
    """Trim, lowercase and collapse interior whitespace."""
    return " ".join(text.split()).lower()


class PrayerCache:
    """Bounded, expiring, persisted cache of prayer generation results.

    Every operation re-reads the persisted record before touching it, so
    processes sharing one storage backend see each other's entries. Two
    processes writing at the same moment still race, and the last write
    wins. Within a process all operations run under one ``asyncio.Lock``
    so a lookup, a store and the evictions it triggers never interleave.

    When the record cannot be read the in-memory copy keeps serving, but
    nothing is written back until a read succeeds again; a failed read never
    overwrites entries it did not see. Stores that could not be written are
    kept and merged into the record on the next successful sync.
    """

    def __init__(
        self,
        storage: CacheStorage | None = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        storage_key: str = CACHE_STORAGE_KEY,
    ) -> None:
        self._storage = storage or MemoryCacheStorage()
        self._entries: LRUCache[PrayerResult] = LRUCache(
            max_size=max_entries, ttl_seconds=ttl_seconds, clock=clock
        )
        self._storage_key = storage_key
        self._lock = asyncio.Lock()
        self._unsynced: set[str] = set()
        self._stats = CacheStats()

    @staticmethod
    def build_key(tradition: str, situation: str) -> str:
        """Generate the cache key for a tradition/situation pair.

        Example:
            >>> PrayerCache.build_key("Buddhism", "  I need   Calm ")
            'prayer:buddhism:i need calm'
        """
        return f"prayer:{normalize_text(tradition)}:{normalize_text(situation)}"

    @property
    def stats(self) -> CacheStats:
        return self._stats.model_copy(update={"size": len(self._entries)})

    async def connect(self) -> None:
        await self._storage.connect()

    async def close(self) -> None:
        await self._storage.close()

    async def lookup(self, tradition: str, situation: str) -> PrayerResult | None:
        """Return a fresh cached result, or None on a miss.

        The result is a copy; mutating it does not touch the cache.
        """
        key = self.build_key(tradition, situation)
        async with self._lock:
            synced = await self._sync()

            if key not in self._entries:
                self._stats.misses += 1
                return None

            payload = self._entries.get(key)
            if payload is None:
                self._stats.expirations += 1
                self._stats.misses += 1
                self._unsynced.discard(key)
                logger.info(f"[CACHE] Expired entry removed: {key}")
            else:
                self._stats.hits += 1
                logger.info(f"[CACHE] Hit: {key}")

            if synced:
                await self._persist()
            return payload.model_copy(deep=True) if payload is not None else None

    async def store(self, tradition: str, situation: str, payload: PrayerResult) -> None:
        """Remember ``payload`` and evict the coldest entries if over capacity."""
        key = self.build_key(tradition, situation)
        async with self._lock:
            synced = await self._sync()
            evicted = self._entries.set(key, payload.model_copy(deep=True))
            self._unsynced.add(key)
            self._unsynced.difference_update(evicted)
            if evicted:
                self._stats.evictions += len(evicted)
                logger.info(f"[CACHE] Evicted {len(evicted)} least recently used entries")
            if synced:
                await self._persist()
            else:
                logger.info(f"[CACHE] Storage unreadable, keeping {key} in memory until next sync")

    async def clear(self) -> None:
        """Drop every entry, in memory and in storage."""
        async with self._lock:
            self._entries.clear()
            self._unsynced.clear()
            try:
                await self._storage.delete(self._storage_key)
            except Exception as e:
                logger.warning(f"[CACHE] Failed to clear storage: {type(e).__name__}: {e}")

    # ── Persistence ───────────────────────────────────────────────────

    async def _sync(self) -> bool:
        """Replace the in-memory view with the persisted record.

        Entries stored here but not yet written are carried over. Returns
        False, leaving memory untouched, when the record cannot be read.
        """
        try:
            raw = await self._storage.read(self._storage_key)
        except Exception as e:
            logger.warning(f"[CACHE] Storage read failed, serving from memory: {type(e).__name__}: {e}")
            return False

        entries = self._decode_record(raw) if raw is not None else []
        slots = [
            (
                entry.key,
                CacheSlot(
                    value=entry.payload,
                    created_at=entry.created_at,
                    last_accessed_at=entry.last_accessed_at,
                ),
            )
            for entry in entries
            if entry.key not in self._unsynced
        ]
        slots.extend((key, slot) for key, slot in self._entries.items() if key in self._unsynced)
        dropped = self._entries.load(slots)
        if dropped:
            self._unsynced.difference_update(dropped)
            self._stats.evictions += len(dropped)
        return True

    async def _persist(self) -> None:
        try:
            await self._storage.write(self._storage_key, self._encode_record())
        except Exception as e:
            logger.warning(f"[CACHE] Storage write failed: {type(e).__name__}: {e}")
            return
        self._unsynced.clear()

    def _encode_record(self) -> str:
        entries = [
            CacheEntry(
                key=key,
                payload=slot.value,
                created_at=slot.created_at,
                last_accessed_at=slot.last_accessed_at,
            ).model_dump(mode="json")
            for key, slot in self._entries.items()
        ]
        return json.dumps(
            {"version": CACHE_FORMAT_VERSION, "entries": entries}, ensure_ascii=False
        )

    @staticmethod
    def _decode_record(raw: str) -> list[CacheEntry]:
        """Parse a persisted record. Anything unexpected yields no entries."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("[CACHE] Persisted record is not valid JSON, ignoring it")
            return []
        if not isinstance(data, dict) or data.get("version") != CACHE_FORMAT_VERSION:
            logger.info("[CACHE] Persisted record has an incompatible version, ignoring it")
            return []
        raw_entries = data.get("entries")
        if not isinstance(raw_entries, list):
            return []

        entries: list[CacheEntry] = []
        for item in raw_entries:
            try:
                entries.append(CacheEntry.model_validate(item))
            except ValidationError:
                logger.info("[CACHE] Skipping malformed persisted entry")
        return entries
