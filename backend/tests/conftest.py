import pytest

from prayer_companion.services.cache import MemoryCacheStorage
from prayer_companion.services.prayer_cache import PrayerCache
from tests.fakes import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryCacheStorage:
    return MemoryCacheStorage()


@pytest.fixture
def prayer_cache(storage: MemoryCacheStorage, clock: FakeClock) -> PrayerCache:
    return PrayerCache(storage=storage, clock=clock)
