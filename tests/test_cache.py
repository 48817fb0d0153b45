"""
Tests for the response cache — TTL, eviction, metrics, key composition.
"""

import pytest

from npmplus.core.observability.metrics import MetricsRegistry
from npmplus.core.services.cache import CacheMetrics, ResponseCache, create_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResponseCache:
    return ResponseCache(default_ttl=600, check_period=0, max_keys=3, clock=clock)


# ── Basic get/set ────────────────────────────────────────────────────


class TestGetSet:
    def test_set_then_get_returns_same_value(self, cache):
        value = {"name": "react"}
        cache.set("k", value)
        assert cache.get("k") is value

    def test_missing_key_is_none(self, cache):
        assert cache.get("nope") is None

    def test_hit_and_miss_counted(self, cache):
        cache.set("k", 1)
        cache.get("k")
        cache.get("other")
        m = cache.get_metrics()
        assert m.hits == 1
        assert m.misses == 1
        assert m.total_requests == 2
        assert m.hit_rate == 0.5

    def test_reset_replaces_value(self, cache):
        cache.set("k", 1)
        cache.set("k", 2)
        assert cache.get("k") == 2
        assert cache.get_metrics().key_count == 1

    def test_delete(self, cache):
        cache.set("k", 1)
        assert cache.delete("k") is True
        assert cache.delete("k") is False
        assert cache.get("k") is None
        assert cache.get_metrics().deletes == 1

    def test_has_does_not_count_as_hit(self, cache):
        cache.set("k", 1)
        assert cache.has("k")
        assert not cache.has("other")
        assert cache.get_metrics().hits == 0

    def test_clear_keeps_counters(self, cache):
        cache.set("a", 1)
        cache.get("a")
        cache.clear()
        m = cache.get_metrics()
        assert m.key_count == 0
        assert m.hits == 1

    def test_negative_ttl_rejected(self, cache):
        with pytest.raises(ValueError):
            cache.set("k", 1, ttl=-1)


# ── Expiry ───────────────────────────────────────────────────────────


class TestExpiry:
    def test_get_after_ttl_is_miss(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(10)
        assert cache.get("k") is None
        m = cache.get_metrics()
        assert m.misses == 1
        assert m.evictions == 1
        assert m.key_count == 0

    def test_get_before_ttl_is_hit(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(9.9)
        assert cache.get("k") == "v"

    def test_default_ttl_applies(self, cache, clock):
        cache.set("k", "v")
        clock.advance(599)
        assert cache.has("k")
        clock.advance(1)
        assert not cache.has("k")

    def test_zero_ttl_never_expires(self, cache, clock):
        cache.set("k", "v", ttl=0)
        clock.advance(10**9)
        assert cache.get("k") == "v"
        assert cache.get_ttl("k") == 0.0

    def test_get_ttl_counts_down(self, cache, clock):
        cache.set("k", "v", ttl=100)
        clock.advance(40)
        assert cache.get_ttl("k") == pytest.approx(60)
        assert cache.get_ttl("missing") is None

    def test_set_ttl_restarts_lifetime(self, cache, clock):
        cache.set("k", "v", ttl=10)
        clock.advance(8)
        assert cache.set_ttl("k", 10) is True
        clock.advance(8)
        assert cache.get("k") == "v"
        assert cache.set_ttl("missing", 10) is False

    def test_sweep_purges_expired(self, cache, clock):
        cache.set("a", 1, ttl=5)
        cache.set("b", 2, ttl=50)
        clock.advance(6)
        assert cache.sweep() == 1
        assert cache.keys() == ["b"]
        assert cache.get_metrics().evictions == 1

    def test_keys_skip_expired(self, cache, clock):
        cache.set("a", 1, ttl=5)
        cache.set("b", 2)
        clock.advance(5)
        assert cache.keys() == ["b"]


# ── Capacity ─────────────────────────────────────────────────────────


class TestCapacity:
    def test_evicts_oldest_beyond_max_keys(self, cache):
        for key in ("a", "b", "c", "d"):
            cache.set(key, key)
        assert cache.keys() == ["b", "c", "d"]
        m = cache.get_metrics()
        assert m.key_count == 3
        assert m.evictions == 1

    def test_reset_key_moves_to_newest(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.set("a", 10)
        cache.set("d", 4)
        assert cache.keys() == ["c", "a", "d"]

    def test_size_never_exceeds_max(self, clock):
        cache = ResponseCache(max_keys=10, check_period=0, clock=clock)
        for i in range(100):
            cache.set(f"k{i}", i)
        assert cache.get_metrics().key_count == 10
        assert cache.get("k99") == 99
        assert cache.get("k89") is None

    def test_invalid_max_keys(self):
        with pytest.raises(ValueError):
            ResponseCache(max_keys=0)


# ── Metrics ──────────────────────────────────────────────────────────


class TestMetrics:
    def test_counters_land_in_shared_registry(self, clock):
        registry = MetricsRegistry()
        cache = ResponseCache(check_period=0, metrics=registry, clock=clock)
        cache.set("k", 1)
        cache.get("k")
        cache.get("x")

        counters = {c["name"]: c["value"] for c in registry.to_dict()["counters"]}
        assert counters["cache_hits"] == 1
        assert counters["cache_misses"] == 1
        assert counters["cache_sets"] == 1

    def test_metrics_serialise_derived_fields(self):
        data = CacheMetrics(hits=3, misses=1).model_dump()
        assert data["total_requests"] == 4
        assert data["hit_rate"] == 0.75

    def test_empty_hit_rate_is_zero(self):
        assert CacheMetrics().hit_rate == 0.0


# ── Sweeper thread ───────────────────────────────────────────────────


class TestSweeper:
    def test_start_and_close(self):
        cache = ResponseCache(check_period=60)
        cache.start()
        assert cache._sweeper is not None
        assert cache._sweeper.daemon
        cache.close()
        assert cache._sweeper is None

    def test_no_thread_when_disabled(self):
        with ResponseCache(check_period=0) as cache:
            assert cache._sweeper is None


# ── Keys ─────────────────────────────────────────────────────────────


class TestCreateKey:
    def test_search_key_shape(self):
        assert create_key("search", "react", 25, 0) == 'search:"react":25:0'

    def test_deterministic(self):
        assert create_key("packageInfo", "lodash", None) == create_key("packageInfo", "lodash", None)

    def test_distinct_arguments_do_not_collide(self):
        keys = {
            create_key("search", "a:b", 1),
            create_key("search", "a", "b:1"),
            create_key("search", "a", 1),
            create_key("search", "a", "1"),
            create_key("search", "a", None),
            create_key("search", "a"),
            create_key("bundleSize", "a", 1),
        }
        assert len(keys) == 7

    def test_order_matters(self):
        assert create_key("x", "a", "b") != create_key("x", "b", "a")

    @pytest.mark.parametrize("name", ["", "1search", "has space", "a:b"])
    def test_invalid_operation_name(self, name):
        with pytest.raises(ValueError):
            create_key(name, "x")
