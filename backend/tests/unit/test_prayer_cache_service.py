"""Unit tests for the prayer cache manager.

Covers key normalization, lazy TTL expiry, LRU eviction, persistence of the
versioned record and fail-open behaviour when storage breaks.
"""

import json

import pytest

from prayer_companion.services.cache import FileCacheStorage, MemoryCacheStorage
from prayer_companion.services.prayer_cache import (
    CACHE_FORMAT_VERSION,
    CACHE_STORAGE_KEY,
    PrayerCache,
    normalize_text,
)
from tests.fakes import FailingStorage, FakeClock, FlakyStorage, make_result

HOUR = 60 * 60


class TestKeyNormalization:
    """Tests for cache key construction."""

    def test_normalize_trims_lowercases_and_collapses(self) -> None:
        assert normalize_text("  I need\t\tCalm \n") == "i need calm"

    def test_build_key_format(self) -> None:
        assert PrayerCache.build_key("Buddhism", "I need calm") == "prayer:buddhism:i need calm"

    @pytest.mark.parametrize(
        "situation",
        ["  I need Calm  ", "i need calm", "I NEED CALM", "i   need\ncalm"],
    )
    def test_equivalent_situations_share_a_key(self, situation: str) -> None:
        assert PrayerCache.build_key("Buddhism", situation) == PrayerCache.build_key(
            "Buddhism", "i need calm"
        )

    def test_traditions_do_not_share_keys(self) -> None:
        assert PrayerCache.build_key("Islam", "grief") != PrayerCache.build_key("Judaism", "grief")


class TestLookupAndStore:
    """Tests for the basic hit/miss contract."""

    @pytest.mark.asyncio
    async def test_lookup_on_empty_cache_is_a_miss(self, prayer_cache: PrayerCache) -> None:
        assert await prayer_cache.lookup("Buddhism", "calm") is None
        assert prayer_cache.stats.misses == 1

    @pytest.mark.asyncio
    async def test_miss_on_absent_key_does_not_write_storage(
        self, prayer_cache: PrayerCache, storage: MemoryCacheStorage
    ) -> None:
        await prayer_cache.lookup("Buddhism", "calm")
        assert await storage.read(CACHE_STORAGE_KEY) is None

    @pytest.mark.asyncio
    async def test_store_then_lookup_with_equivalent_input(self, prayer_cache: PrayerCache) -> None:
        result = make_result()
        await prayer_cache.store("Buddhism", "  I need Calm  ", result)

        cached = await prayer_cache.lookup("Buddhism", "i need calm")

        assert cached == result
        assert prayer_cache.stats.hits == 1

    @pytest.mark.asyncio
    async def test_store_overwrites_existing_entry(self, prayer_cache: PrayerCache) -> None:
        await prayer_cache.store("Buddhism", "calm", make_result("first"))
        await prayer_cache.store("Buddhism", "calm", make_result("second"))

        cached = await prayer_cache.lookup("Buddhism", "calm")

        assert cached == make_result("second")
        assert prayer_cache.stats.size == 1

    @pytest.mark.asyncio
    async def test_clear_empties_memory_and_storage(
        self, prayer_cache: PrayerCache, storage: MemoryCacheStorage
    ) -> None:
        await prayer_cache.store("Buddhism", "calm", make_result())
        await prayer_cache.clear()

        assert prayer_cache.stats.size == 0
        assert await storage.read(CACHE_STORAGE_KEY) is None
        assert await prayer_cache.lookup("Buddhism", "calm") is None


class TestExpiry:
    """Tests for lazy 24h expiry."""

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, prayer_cache: PrayerCache, clock: FakeClock) -> None:
        await prayer_cache.store("Christianity", "gratitude", make_result())
        clock.advance(25 * HOUR)

        assert await prayer_cache.lookup("Christianity", "gratitude") is None
        assert prayer_cache.stats.size == 0
        assert prayer_cache.stats.expirations == 1

    @pytest.mark.asyncio
    async def test_expired_entry_removed_from_persisted_record(
        self, prayer_cache: PrayerCache, storage: MemoryCacheStorage, clock: FakeClock
    ) -> None:
        await prayer_cache.store("Christianity", "gratitude", make_result())
        clock.advance(25 * HOUR)
        await prayer_cache.lookup("Christianity", "gratitude")

        record = json.loads(await storage.read(CACHE_STORAGE_KEY))
        assert record["entries"] == []

    @pytest.mark.asyncio
    async def test_entry_fresh_within_ttl(self, prayer_cache: PrayerCache, clock: FakeClock) -> None:
        await prayer_cache.store("Christianity", "gratitude", make_result())
        clock.advance(23 * HOUR)

        assert await prayer_cache.lookup("Christianity", "gratitude") is not None


class TestEviction:
    """Tests for capacity and LRU eviction."""

    @pytest.mark.asyncio
    async def test_capacity_is_never_exceeded(self, prayer_cache: PrayerCache, clock: FakeClock) -> None:
        for i in range(55):
            await prayer_cache.store("Hinduism", f"situation {i}", make_result(str(i)))
            clock.advance(1)

        assert prayer_cache.stats.size == 50
        assert prayer_cache.stats.evictions == 5
        for i in range(5):
            assert await prayer_cache.lookup("Hinduism", f"situation {i}") is None
        for i in range(5, 55):
            assert await prayer_cache.lookup("Hinduism", f"situation {i}") is not None

    @pytest.mark.asyncio
    async def test_recent_lookup_spares_entry_from_eviction(
        self, prayer_cache: PrayerCache, clock: FakeClock
    ) -> None:
        for i in range(50):
            await prayer_cache.store("Hinduism", f"situation {i}", make_result(str(i)))
            clock.advance(1)

        clock.advance(HOUR)
        assert await prayer_cache.lookup("Hinduism", "situation 0") is not None

        await prayer_cache.store("Hinduism", "newcomer", make_result("new"))

        assert await prayer_cache.lookup("Hinduism", "situation 0") is not None
        assert await prayer_cache.lookup("Hinduism", "situation 1") is None

    @pytest.mark.asyncio
    async def test_small_capacity(self, storage: MemoryCacheStorage, clock: FakeClock) -> None:
        cache = PrayerCache(storage=storage, max_entries=2, clock=clock)
        await cache.store("Islam", "a", make_result("a"))
        clock.advance(1)
        await cache.store("Islam", "b", make_result("b"))
        clock.advance(1)
        await cache.store("Islam", "c", make_result("c"))

        assert await cache.lookup("Islam", "a") is None
        assert cache.stats.size == 2


class TestPersistence:
    """Tests for the persisted record format and reloading."""

    @pytest.mark.asyncio
    async def test_record_layout(
        self, prayer_cache: PrayerCache, storage: MemoryCacheStorage, clock: FakeClock
    ) -> None:
        await prayer_cache.store("Sikhism", "courage", make_result())

        record = json.loads(await storage.read(CACHE_STORAGE_KEY))

        assert record["version"] == CACHE_FORMAT_VERSION
        assert len(record["entries"]) == 1
        entry = record["entries"][0]
        assert entry["key"] == "prayer:sikhism:courage"
        assert entry["created_at"] == clock.now
        assert entry["last_accessed_at"] == clock.now
        assert len(entry["payload"]["prayers"]) == 3

    @pytest.mark.asyncio
    async def test_new_instance_reloads_entries(
        self, storage: MemoryCacheStorage, clock: FakeClock
    ) -> None:
        first = PrayerCache(storage=storage, clock=clock)
        await first.store("Sikhism", "courage", make_result())

        second = PrayerCache(storage=storage, clock=clock)

        assert await second.lookup("Sikhism", "courage") == make_result()

    @pytest.mark.asyncio
    async def test_reload_preserves_recency(self, storage: MemoryCacheStorage, clock: FakeClock) -> None:
        first = PrayerCache(storage=storage, max_entries=2, clock=clock)
        await first.store("Islam", "a", make_result("a"))
        clock.advance(1)
        await first.store("Islam", "b", make_result("b"))
        clock.advance(1)
        await first.lookup("Islam", "a")

        second = PrayerCache(storage=storage, max_entries=2, clock=clock)
        clock.advance(1)
        await second.store("Islam", "c", make_result("c"))

        assert await second.lookup("Islam", "a") is not None
        assert await second.lookup("Islam", "b") is None

    @pytest.mark.asyncio
    async def test_incompatible_version_loads_empty(self, storage: MemoryCacheStorage, clock: FakeClock) -> None:
        await storage.write(
            CACHE_STORAGE_KEY,
            json.dumps({"version": 99, "entries": [{"key": "prayer:x:y"}]}),
        )
        cache = PrayerCache(storage=storage, clock=clock)

        assert await cache.lookup("x", "y") is None
        assert cache.stats.size == 0

    @pytest.mark.asyncio
    async def test_malformed_json_loads_empty(self, storage: MemoryCacheStorage, clock: FakeClock) -> None:
        await storage.write(CACHE_STORAGE_KEY, "{not json")
        cache = PrayerCache(storage=storage, clock=clock)

        assert await cache.lookup("Buddhism", "calm") is None
        await cache.store("Buddhism", "calm", make_result())
        assert await cache.lookup("Buddhism", "calm") is not None

    @pytest.mark.asyncio
    async def test_malformed_entries_are_skipped(self, storage: MemoryCacheStorage, clock: FakeClock) -> None:
        good = PrayerCache(storage=storage, clock=clock)
        await good.store("Buddhism", "calm", make_result())
        record = json.loads(await storage.read(CACHE_STORAGE_KEY))
        record["entries"].append({"key": "prayer:broken:entry", "payload": {"prayers": []}})
        await storage.write(CACHE_STORAGE_KEY, json.dumps(record))

        cache = PrayerCache(storage=storage, clock=clock)

        assert await cache.lookup("Buddhism", "calm") is not None
        assert cache.stats.size == 1

    @pytest.mark.asyncio
    async def test_file_storage_round_trip(self, tmp_path, clock: FakeClock) -> None:
        storage = FileCacheStorage(tmp_path / "cache")
        first = PrayerCache(storage=storage, clock=clock)
        await first.connect()
        await first.store("Judaism", "healing", make_result())

        assert (tmp_path / "cache" / f"{CACHE_STORAGE_KEY}.json").exists()

        second = PrayerCache(storage=FileCacheStorage(tmp_path / "cache"), clock=clock)
        assert await second.lookup("Judaism", "healing") == make_result()


class TestFailOpen:
    """Storage failures degrade to misses and skipped writes."""

    @pytest.mark.asyncio
    async def test_read_failure_is_a_miss(self, clock: FakeClock) -> None:
        cache = PrayerCache(storage=FailingStorage(fail_reads=True, fail_writes=False), clock=clock)

        assert await cache.lookup("Buddhism", "calm") is None

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, clock: FakeClock) -> None:
        cache = PrayerCache(storage=FailingStorage(fail_reads=False, fail_writes=True), clock=clock)

        await cache.store("Buddhism", "calm", make_result())

        # The in-memory copy still serves this process.
        assert await cache.lookup("Buddhism", "calm") == make_result()

    @pytest.mark.asyncio
    async def test_total_storage_outage(self, clock: FakeClock) -> None:
        cache = PrayerCache(storage=FailingStorage(), clock=clock)

        await cache.store("Buddhism", "calm", make_result())
        await cache.clear()

        assert await cache.lookup("Buddhism", "calm") is None

    @pytest.mark.asyncio
    async def test_read_blip_keeps_persisted_entries(self, clock: FakeClock) -> None:
        storage = FlakyStorage()
        seeded = PrayerCache(storage=storage, clock=clock)
        for i in range(10):
            await seeded.store("Islam", f"situation {i}", make_result(str(i)))

        storage.failing_reads = 1
        cache = PrayerCache(storage=storage, clock=clock)

        assert await cache.lookup("Islam", "situation 0") is None
        assert await cache.lookup("Islam", "situation 1") is not None
        await cache.store("Islam", "newcomer", make_result("new"))

        reloaded = PrayerCache(storage=storage, clock=clock)
        assert await reloaded.lookup("Islam", "situation 9") is not None
        assert reloaded.stats.size == 11

    @pytest.mark.asyncio
    async def test_store_during_outage_does_not_overwrite_record(self, clock: FakeClock) -> None:
        storage = FlakyStorage()
        seeded = PrayerCache(storage=storage, clock=clock)
        await seeded.store("Islam", "patience", make_result("old"))

        storage.failing_reads = 1
        cache = PrayerCache(storage=storage, clock=clock)
        await cache.store("Judaism", "grief", make_result("new"))

        record = json.loads(await storage.read(CACHE_STORAGE_KEY))
        assert [entry["key"] for entry in record["entries"]] == ["prayer:islam:patience"]

        # Next successful sync writes the held-back entry alongside the old ones.
        assert await cache.lookup("Islam", "patience") is not None
        record = json.loads(await storage.read(CACHE_STORAGE_KEY))
        assert {entry["key"] for entry in record["entries"]} == {
            "prayer:islam:patience",
            "prayer:judaism:grief",
        }


class TestSharedStorage:
    """Two cache instances on one backend, as with several workers."""

    @pytest.mark.asyncio
    async def test_instances_see_each_others_entries(
        self, storage: MemoryCacheStorage, clock: FakeClock
    ) -> None:
        worker_a = PrayerCache(storage=storage, clock=clock)
        worker_b = PrayerCache(storage=storage, clock=clock)

        await worker_a.store("Islam", "patience", make_result("a"))
        assert await worker_b.lookup("Islam", "patience") == make_result("a")

        await worker_b.store("Judaism", "grief", make_result("b"))
        assert await worker_a.lookup("Judaism", "grief") == make_result("b")
        assert await worker_a.lookup("Islam", "patience") == make_result("a")

    @pytest.mark.asyncio
    async def test_clear_is_seen_by_other_instance(
        self, storage: MemoryCacheStorage, clock: FakeClock
    ) -> None:
        worker_a = PrayerCache(storage=storage, clock=clock)
        worker_b = PrayerCache(storage=storage, clock=clock)
        await worker_a.store("Islam", "patience", make_result())
        assert await worker_b.lookup("Islam", "patience") is not None

        await worker_a.clear()

        assert await worker_b.lookup("Islam", "patience") is None


class TestIsolation:
    """Callers cannot change cached payloads through returned objects."""

    @pytest.mark.asyncio
    async def test_mutating_lookup_result_leaves_cache_intact(self, clock: FakeClock) -> None:
        cache = PrayerCache(storage=FailingStorage(fail_reads=True, fail_writes=True), clock=clock)
        await cache.store("Buddhism", "calm", make_result())

        first = await cache.lookup("Buddhism", "calm")
        first.prayers[0].title = "changed"

        assert (await cache.lookup("Buddhism", "calm")).prayers[0].title == "Prayer 0 for calm"

    @pytest.mark.asyncio
    async def test_mutating_stored_payload_leaves_cache_intact(self, clock: FakeClock) -> None:
        cache = PrayerCache(storage=FailingStorage(fail_reads=True, fail_writes=True), clock=clock)
        payload = make_result()
        await cache.store("Buddhism", "calm", payload)

        payload.prayers[0].body = "changed"

        assert (await cache.lookup("Buddhism", "calm")).prayers[0].body != "changed"
