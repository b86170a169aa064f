import asyncio

import pytest

from urpaq_rag.cache import CacheKind, CacheService, ExpiringCache
from urpaq_rag.config import CacheSettings

from .conftest import FakeClock


def _counting(value):
    calls = []

    def compute():
        calls.append(value)
        return value

    return compute, calls


def test_hit_does_not_recompute_and_normalizes_key():
    cache = ExpiringCache(CacheKind.QUERY, ttl_seconds=60, clock=FakeClock())
    compute, calls = _counting("value")

    assert asyncio.run(cache.get_or_compute("  Расписание ", compute)) == "value"
    assert asyncio.run(cache.get_or_compute("расписание", compute)) == "value"
    assert len(calls) == 1
    assert cache.make_key(" Расписание ") == "query:расписание"


def test_entry_expires_after_ttl():
    clock = FakeClock()
    cache = ExpiringCache(CacheKind.SEARCH, ttl_seconds=60, clock=clock)
    compute, calls = _counting([1, 2])

    asyncio.run(cache.get_or_compute("q", compute))
    clock.now = 60
    asyncio.run(cache.get_or_compute("q", compute))
    assert len(calls) == 1

    clock.now = 61
    asyncio.run(cache.get_or_compute("q", compute))
    assert len(calls) == 2


def test_coroutine_compute_is_awaited():
    cache = ExpiringCache(CacheKind.SEARCH, ttl_seconds=60, clock=FakeClock())

    async def compute():
        return ["doc"]

    assert asyncio.run(cache.get_or_compute("q", compute)) == ["doc"]
    assert cache.lookup("q").value == ["doc"]


def test_failed_compute_is_not_cached():
    cache = ExpiringCache(CacheKind.SEARCH, ttl_seconds=60, clock=FakeClock())

    def broken():
        raise RuntimeError("index down")

    with pytest.raises(RuntimeError):
        asyncio.run(cache.get_or_compute("q", broken))
    assert cache.lookup("q") is None
    assert asyncio.run(cache.get_or_compute("q", lambda: "ok")) == "ok"


def test_cached_falsy_value_is_a_hit():
    cache = ExpiringCache(CacheKind.SEARCH, ttl_seconds=60, clock=FakeClock())
    compute, calls = _counting([])

    asyncio.run(cache.get_or_compute("nothing", compute))
    asyncio.run(cache.get_or_compute("nothing", compute))
    assert len(calls) == 1


def test_eviction_drops_quarter_with_soonest_expiry():
    clock = FakeClock()
    cache = ExpiringCache(CacheKind.QUERY, ttl_seconds=100, max_size=8, clock=clock)
    for i in range(8):
        clock.now = i
        cache.put(f"k{i}", i)

    clock.now = 8
    cache.put("k8", 8)

    assert cache.size() == 7
    assert cache.lookup("k0") is None
    assert cache.lookup("k1") is None
    assert cache.lookup("k2").value == 2
    assert cache.lookup("k8").value == 8


def test_eviction_prefers_expired_entries():
    clock = FakeClock()
    cache = ExpiringCache(CacheKind.QUERY, ttl_seconds=10, max_size=8, clock=clock)
    cache.put("stale", 0)
    clock.now = 20
    for i in range(1, 8):
        cache.put(f"k{i}", i)

    cache.put("k8", 8)

    assert cache.size() == 8
    assert cache.lookup("stale") is None
    assert all(cache.lookup(f"k{i}") is not None for i in range(1, 9))


def test_service_invalidate_and_stats():
    clock = FakeClock()
    service = CacheService(CacheSettings(search_ttl_seconds=10, query_ttl_seconds=100), clock=clock)
    asyncio.run(service.get_or_compute_search("a", lambda: []))
    asyncio.run(service.get_or_compute_query("a", lambda: "processed"))
    asyncio.run(service.get_or_compute_query("b", lambda: "processed"))

    clock.now = 11
    stats = service.stats()
    assert (stats.search_cache_size, stats.search_cache_valid) == (1, 0)
    assert (stats.query_cache_size, stats.query_cache_valid) == (2, 2)
    assert str(stats) == "Cache Stats: Search[0/1] Query[2/2]"

    service.invalidate(CacheKind.QUERY)
    assert service.stats().query_cache_size == 0
    assert service.stats().search_cache_size == 1

    service.invalidate_all()
    assert service.stats().as_dict()["searchCacheSize"] == 0
