"""
Unit tests for caching and invalidation.
"""

import threading
import time

import pytest

from evmql.cache import (
    CacheInvalidator,
    InMemoryCache,
    NoOpCache,
    generate_key,
    invalidate_by_address,
    invalidate_by_prefix,
    invalidate_matching,
    query_key,
)
from evmql.query.model import Method


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock):
    c = InMemoryCache(max_items=3, default_ttl=60, cleanup_interval=0, clock=clock)
    yield c
    c.close()


class TestInMemoryCache:
    """Test basic cache operations."""

    def test_set_get(self, cache):
        cache.set("k", 42)
        assert cache.get("k") == (42, True)

    def test_miss(self, cache):
        assert cache.get("missing") == (None, False)

    def test_falsy_values_are_hits(self, cache):
        cache.set("zero", 0)
        cache.set("empty", [])
        assert cache.get("zero") == (0, True)
        assert cache.get("empty") == ([], True)

    def test_delete(self, cache):
        cache.set("k", 1)
        cache.delete("k")
        cache.delete("never-there")
        assert cache.get("k") == (None, False)

    def test_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert cache.size() == 0
        assert len(cache) == 0

    def test_keys(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        assert sorted(cache.keys()) == ["a", "b"]

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            InMemoryCache(max_items=0, cleanup_interval=0)
        with pytest.raises(ValueError):
            InMemoryCache(default_ttl=0, cleanup_interval=0)


class TestExpiry:
    """Test TTL handling."""

    def test_expires_after_ttl(self, cache, clock):
        cache.set("k", 1, ttl=10)
        clock.advance(9)
        assert cache.get("k") == (1, True)
        clock.advance(1)
        assert cache.get("k") == (None, False)

    def test_zero_ttl_uses_default(self, cache, clock):
        cache.set("k", 1, ttl=0)
        clock.advance(59)
        assert cache.get("k")[1]
        clock.advance(1)
        assert not cache.get("k")[1]

    def test_none_ttl_uses_default(self, cache, clock):
        cache.set("k", 1, ttl=None)
        clock.advance(30)
        assert cache.get("k")[1]

    def test_overwrite_refreshes_expiry(self, cache, clock):
        cache.set("k", 1, ttl=10)
        clock.advance(8)
        cache.set("k", 2, ttl=10)
        clock.advance(8)
        assert cache.get("k") == (2, True)

    def test_sweep_removes_expired(self, cache, clock):
        cache.set("short", 1, ttl=1)
        cache.set("long", 2, ttl=100)
        clock.advance(5)

        assert cache.sweep() == 1
        assert cache.keys() == ["long"]
        assert cache.stats().expirations == 1

    def test_background_sweeper(self):
        c = InMemoryCache(default_ttl=0.01, cleanup_interval=0.02)
        try:
            c.set("k", 1)
            for _ in range(100):
                if c.size() == 0:
                    break
                time.sleep(0.02)
            assert c.size() == 0
        finally:
            c.stop()


class TestCapacity:
    """Test eviction at capacity."""

    def test_size_never_exceeds_max(self, cache):
        for i in range(20):
            cache.set(f"k{i}", i)
            assert cache.size() <= 3

    def test_evicts_nearest_expiry(self, cache):
        cache.set("a", 1, ttl=30)
        cache.set("b", 2, ttl=10)
        cache.set("c", 3, ttl=50)

        cache.set("d", 4, ttl=40)

        assert cache.get("b") == (None, False)
        assert sorted(cache.keys()) == ["a", "c", "d"]
        assert cache.stats().evictions == 1

    def test_overwrite_at_capacity_does_not_evict(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        cache.set("a", 10)

        assert sorted(cache.keys()) == ["a", "b", "c"]
        assert cache.stats().evictions == 0


class TestStats:
    def test_hits_and_misses(self, cache):
        cache.set("k", 1)
        cache.get("k")
        cache.get("k")
        cache.get("missing")

        stats = cache.stats()
        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(2 / 3)
        assert stats.to_dict()["size"] == 1


class TestConcurrency:
    """Test thread safety."""

    def test_concurrent_access(self):
        c = InMemoryCache(max_items=50, default_ttl=60, cleanup_interval=0)
        errors = []

        def worker(n):
            try:
                for i in range(200):
                    c.set(f"{n}:{i}", i)
                    c.get(f"{n}:{i // 2}")
                    if i % 10 == 0:
                        c.delete(f"{n}:{i}")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        assert c.size() <= 50


class TestNoOpCache:
    def test_stores_nothing(self):
        c = NoOpCache()
        c.set("k", 1)
        assert c.get("k") == (None, False)
        assert c.size() == 0
        assert c.keys() == []


class TestKeys:
    """Test key construction."""

    def test_deterministic(self):
        assert generate_key("p", 1, "a") == generate_key("p", 1, "a")

    def test_parameters_matter(self):
        assert generate_key("p", 1, 2) != generate_key("p", 2, 1)
        assert generate_key("p", 1) != generate_key("q", 1)

    def test_format(self):
        key = generate_key("logs", 1, 2)
        prefix, digest = key.rsplit(":", 1)
        assert prefix == "logs"
        assert len(digest) == 64

    def test_query_key_prefix(self):
        key = query_key("BALANCE", "0xABC", "latest")
        assert key.startswith("balance:0xabc:")

    def test_unpackable_values_use_str(self):
        class Thing:
            def __str__(self):
                return "thing"

        assert generate_key("p", Thing()) == generate_key("p", "thing")


class TestInvalidation:
    """Test prefix and address invalidation."""

    ADDR_A = "0x" + "a" * 40
    ADDR_B = "0x" + "b" * 40

    @pytest.fixture
    def filled(self):
        c = InMemoryCache(max_items=100, cleanup_interval=0)
        for method in Method:
            for addr in (self.ADDR_A, self.ADDR_B):
                c.set(query_key(method.cache_prefix, addr, 1, 2), "v")
        yield c
        c.close()

    def test_by_address(self, filled):
        removed = invalidate_by_address(filled, self.ADDR_A.upper().replace("0X", "0x"))

        assert removed == 3
        assert all(self.ADDR_A not in key for key in filled.keys())
        assert filled.size() == 3

    def test_by_prefix(self, filled):
        assert invalidate_by_prefix(filled, "logs:") == 2
        assert filled.size() == 4

    def test_matching(self, filled):
        assert invalidate_matching(filled, lambda key: self.ADDR_B in key) == 3

    def test_invalidator_methods(self, filled):
        invalidator = CacheInvalidator(filled)

        assert invalidator.invalidate_balance() == 2
        assert invalidator.invalidate_logs() == 2
        assert invalidator.invalidate_transactions() == 2
        assert filled.size() == 0

    def test_invalidator_address_and_all(self, filled):
        invalidator = CacheInvalidator(filled)

        assert invalidator.invalidate_address(self.ADDR_B) == 3
        invalidator.invalidate_all()
        assert filled.size() == 0

    def test_invalidator_prefix(self, filled):
        assert CacheInvalidator(filled).invalidate_prefix("balance:") == 2
