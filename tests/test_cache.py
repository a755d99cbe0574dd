"""Cache stores: round trip, expiry, pattern invalidation and Redis failures."""

import fnmatch

import redis

from catalog_search import cache as cache_module
from catalog_search.cache import InMemoryCache, RedisCache, get_cache
from catalog_search.config import Settings


class FakeRedis:
    """Dict-backed client exposing the calls ``RedisCache`` makes."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value.encode("utf-8")
        self.ttls[key] = ttl

    def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.store.pop(key, None) is not None)
        return removed

    def scan_iter(self, match=None, count=None):
        return [key for key in list(self.store) if fnmatch.fnmatchcase(key, match)]


class BrokenRedis:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError("connection refused")

        return fail


def test_in_memory_round_trip():
    store = InMemoryCache()
    store.set("product:p1", {"id": "p1"}, ttl=60)

    assert store.get("product:p1") == {"id": "p1"}
    assert store.get("product:p2") is None


def test_in_memory_expiry():
    store = InMemoryCache()
    store.set("k", {"v": 1}, ttl=-1)

    assert store.get("k") is None


def test_in_memory_pattern_invalidation():
    store = InMemoryCache()
    for key in ("products:a", "products:b", "product:p1", "GET:/search?q=tel"):
        store.set(key, {"k": key}, ttl=60)

    removed = store.invalidate_pattern("products:*")

    assert removed == 2
    assert store.get("products:a") is None
    assert store.get("product:p1") == {"k": "product:p1"}
    assert store.get("GET:/search?q=tel") is not None


def test_redis_cache_prefixes_keys_and_serializes_json():
    client = FakeRedis()
    store = RedisCache(client, prefix="catalog:")

    store.set("product:p1", {"id": "p1", "price_cents": 500}, ttl=1800)

    assert client.ttls == {"catalog:product:p1": 1800}
    assert store.get("product:p1") == {"id": "p1", "price_cents": 500}


def test_redis_cache_pattern_invalidation():
    client = FakeRedis()
    store = RedisCache(client, prefix="catalog:")
    store.set("products:a", {}, ttl=60)
    store.set("products:b", {}, ttl=60)
    store.set("vendor:v1", {}, ttl=60)

    assert store.invalidate_pattern("products:*") == 2
    assert list(client.store) == ["catalog:vendor:v1"]
    assert store.invalidate_pattern("nothing:*") == 0


def test_redis_errors_never_propagate():
    store = RedisCache(BrokenRedis())

    assert store.get("k") is None
    store.set("k", {"v": 1}, ttl=10)
    store.delete("k")
    assert store.invalidate_pattern("*") == 0


def test_get_cache_falls_back_to_memory(monkeypatch):
    class UnreachableRedis:
        def __init__(self, **kwargs):
            pass

        def ping(self):
            raise redis.ConnectionError("no server")

    monkeypatch.setattr(cache_module.redis, "Redis", UnreachableRedis)

    assert isinstance(get_cache(Settings()), InMemoryCache)


def test_get_cache_bounds_redis_socket_calls(monkeypatch):
    """Reads and writes must not hang a worker on a stalled Redis."""

    created = {}

    class RecordingRedis:
        def __init__(self, **kwargs):
            created.update(kwargs)

        def ping(self):
            return True

    monkeypatch.setattr(cache_module.redis, "Redis", RecordingRedis)
    config = Settings()

    store = get_cache(config)

    assert isinstance(store, RedisCache)
    assert created["socket_timeout"] == config.redis_socket_timeout
    assert created["socket_connect_timeout"] == 2
