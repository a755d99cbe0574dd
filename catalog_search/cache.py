"""Caching helpers with Redis primary and in-memory fallback.

Both stores are safe to share between concurrent requests and write-path
code: Redis is atomic per key, the in-memory store serializes on a lock.
Store errors never propagate; a failing cache behaves like an empty one.
"""
from __future__ import annotations

import fnmatch
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, NamedTuple, Optional, Protocol

import redis

from .config import Settings, settings

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[Payload]: ...

    def set(self, key: str, value: Payload, ttl: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def invalidate_pattern(self, pattern: str) -> int: ...


@dataclass
class RedisCache:
    """JSON payloads under ``prefix``; every key carries its own TTL."""

    client: redis.Redis
    prefix: str = ""

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[Payload]:
        try:
            raw = self.client.get(self._key(key))
        except redis.RedisError as exc:
            logger.warning("Redis get failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Dropping undecodable cache entry %s", key)
            return None

    def set(self, key: str, value: Payload, ttl: int) -> None:
        try:
            self.client.setex(self._key(key), ttl, json.dumps(value))
        except redis.RedisError as exc:
            logger.warning("Redis set failed for %s: %s", key, exc)

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except redis.RedisError as exc:
            logger.warning("Redis delete failed for %s: %s", key, exc)

    def invalidate_pattern(self, pattern: str) -> int:
        # SCAN instead of KEYS so a large keyspace does not block the server.
        try:
            matched = list(self.client.scan_iter(match=self._key(pattern), count=500))
            return int(self.client.delete(*matched)) if matched else 0
        except redis.RedisError as exc:
            logger.warning("Redis pattern invalidation failed for %s: %s", pattern, exc)
            return 0


class _Entry(NamedTuple):
    expires_at: float
    payload: Payload


class InMemoryCache:
    """Process-local store used when Redis is unreachable."""

    def __init__(self) -> None:
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def _live(self, key: str, now: float) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at <= now:
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Optional[Payload]:
        with self._lock:
            entry = self._live(key, time.monotonic())
            return entry.payload if entry is not None else None

    def set(self, key: str, value: Payload, ttl: int) -> None:
        with self._lock:
            self._entries[key] = _Entry(time.monotonic() + ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete live keys matching a glob pattern; expired ones are purged uncounted."""
        with self._lock:
            now = time.monotonic()
            removed = 0
            for key in list(self._entries):
                if self._live(key, now) is not None and fnmatch.fnmatchcase(key, pattern):
                    del self._entries[key]
                    removed += 1
            return removed


def get_cache(config: Settings = settings) -> CacheBackend:
    """Redis when reachable, otherwise a process-local cache."""
    client = redis.Redis(
        host=config.redis_host,
        port=config.redis_port,
        password=config.redis_password or None,
        socket_connect_timeout=2,
        socket_timeout=config.redis_socket_timeout,
    )
    try:
        client.ping()
    except redis.RedisError as exc:
        logger.warning(
            "Redis not available at %s:%s (%s), using in-memory cache",
            config.redis_host,
            config.redis_port,
            exc,
        )
        return InMemoryCache()
    logger.info("Using Redis cache at %s:%s", config.redis_host, config.redis_port)
    return RedisCache(client, prefix=config.redis_key_prefix)
