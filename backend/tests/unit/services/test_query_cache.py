"""
Unit Tests for the query cache
Tests for: key format, TTL expiry, LRU eviction, prefix clearing, fetch-through
"""
import pytest

from app.services.query_cache import QueryCache, make_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return QueryCache(ttl=60, max_entries=3, clock=clock)


class TestMakeKey:
    """Test cache key format"""

    def test_format(self):
        key = make_key("skills", "*", {"b": 2, "a": 1}, single=True)
        assert key == 'skills:*:{"a": 1, "b": 2}:true'

    def test_match_order_does_not_matter(self):
        assert make_key("t", match={"x": 1, "y": 2}) == make_key("t", match={"y": 2, "x": 1})

    def test_no_match(self):
        assert make_key("profiles") == "profiles:*:null:false"


class TestExpiry:
    """Test TTL behaviour"""

    def test_hit_before_ttl(self, cache, clock):
        cache.set("k", [1])
        clock.advance(59.9)
        assert cache.get("k") == [1]

    def test_expired_at_ttl(self, cache, clock):
        cache.set("k", [1])
        clock.advance(60)
        assert cache.get("k") is None
        assert "k" not in cache

    def test_per_entry_ttl(self, cache, clock):
        cache.set("short", 1, ttl=5)
        cache.set("long", 2)
        clock.advance(10)
        assert cache.get("short") is None
        assert cache.get("long") == 2


class TestEviction:
    """Test LRU eviction"""

    def test_least_recently_used_is_evicted(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.get("a")
        cache.set("d", 4)

        assert "b" not in cache
        assert len(cache) == 3
        assert cache.stats()["evictions"] == 1

    def test_overwrite_does_not_evict(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.set("a", 10)
        assert len(cache) == 3
        assert cache.get("a") == 10


class TestClearing:
    """Test invalidation"""

    def test_clear_prefix(self, cache):
        cache.set("skills:*:null:false", 1)
        cache.set("skills:*:{}:true", 2)
        cache.set("profiles:*:null:false", 3)

        assert cache.clear(prefix="skills:") == 2
        assert len(cache) == 1

    def test_clear_all(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.clear() == 2
        assert len(cache) == 0

    def test_invalidate_single_key(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        assert "a" not in cache and "b" in cache

    def test_invalidate_everything(self, cache):
        cache.set("a", 1)
        cache.invalidate()
        assert len(cache) == 0


class TestGetOrFetch:
    """Test fetch-through"""

    async def test_fetches_once(self, cache):
        calls = []

        async def fetch():
            calls.append(1)
            return ["row"]

        assert await cache.get_or_fetch("k", fetch) == ["row"]
        assert await cache.get_or_fetch("k", fetch) == ["row"]
        assert len(calls) == 1
        assert cache.stats()["hits"] == 1
        assert cache.stats()["misses"] == 1

    async def test_empty_result_is_cached(self, cache):
        calls = []

        async def fetch():
            calls.append(1)
            return []

        await cache.get_or_fetch("k", fetch)
        assert await cache.get_or_fetch("k", fetch) == []
        assert len(calls) == 1

    async def test_refetches_after_expiry(self, cache, clock):
        values = iter([1, 2])

        async def fetch():
            return next(values)

        assert await cache.get_or_fetch("k", fetch) == 1
        clock.advance(61)
        assert await cache.get_or_fetch("k", fetch) == 2

    async def test_failing_fetch_caches_nothing(self, cache):
        async def fetch():
            raise RuntimeError("database unavailable")

        with pytest.raises(RuntimeError):
            await cache.get_or_fetch("k", fetch)
        assert "k" not in cache

    def test_hit_rate(self, cache):
        cache.set("a", 1)
        cache.get("a")
        cache.get("missing")
        assert cache.stats()["hit_rate"] == 50.0
