import fnmatch
from datetime import date

import pytest

from common.cache import RedisJsonCache
from tapechart_service import occupancy_cache
from tapechart_service.engine import OccupancyDay


class InMemoryRedis:
    """The slice of the redis client API the cache touches."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    def scan_iter(self, pattern):
        return [k for k in list(self.store) if fnmatch.fnmatch(k, pattern)]

    def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0


@pytest.fixture
def redis_double(monkeypatch):
    fake = InMemoryRedis()
    monkeypatch.setattr(occupancy_cache._cache, "_client", fake)
    return fake


def test_cache_is_a_no_op_without_redis(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    cache = RedisJsonCache("tests:ns")

    cache.set({"a": 1}, 7)
    assert cache.get(7) is None
    assert cache.invalidate(7) == 0


def test_keys_are_namespaced():
    assert RedisJsonCache("tapechart:occupancy:").key(7, "2024-06-01") == "tapechart:occupancy:7:2024-06-01"


def test_occupancy_days_survive_the_cache(redis_double):
    days = [
        OccupancyDay(date="2024-06-01", occupied_count=2, total_count=4, percentage=50),
        OccupancyDay(date="2024-06-02", occupied_count=0, total_count=4, percentage=0),
    ]
    start, end = date(2024, 6, 1), date(2024, 6, 2)

    assert occupancy_cache.get_occupancy(7, start, end) is None
    occupancy_cache.store_occupancy(7, start, end, iter(days))

    cached = occupancy_cache.get_occupancy(7, start, end)
    assert [d.occupied_count for d in cached] == [2, 0]
    assert cached[0].date == "2024-06-01"
    assert cached[0].percentage == 50
    assert redis_double.ttls["tapechart:occupancy:7:2024-06-01:2024-06-02"] == occupancy_cache.OCCUPANCY_CACHE_TTL


def test_invalidation_only_drops_the_writing_organization(redis_double):
    day = [OccupancyDay(date="2024-06-01", occupied_count=1, total_count=1, percentage=100)]
    occupancy_cache.store_occupancy(7, date(2024, 6, 1), date(2024, 6, 1), day)
    occupancy_cache.store_occupancy(8, date(2024, 6, 1), date(2024, 6, 1), day)

    occupancy_cache.invalidate_occupancy(7)

    assert occupancy_cache.get_occupancy(7, date(2024, 6, 1), date(2024, 6, 1)) is None
    assert occupancy_cache.get_occupancy(8, date(2024, 6, 1), date(2024, 6, 1)) is not None
