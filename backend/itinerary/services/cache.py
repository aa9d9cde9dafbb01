from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any

import redis

from itinerary.utils.settings import get_settings


LOGGER = logging.getLogger(__name__)

KEY_PREFIX = "itinerary:"


class CacheBackend:
    def get(self, key: str) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class RedisCache(CacheBackend):
    def __init__(self, redis_url: str):
        self.client = redis.Redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=1)
        self.client.ping()

    def get(self, key: str) -> Any:
        raw = self.client.get(KEY_PREFIX + key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        raw = json.dumps(value, default=str)
        if ttl_seconds:
            self.client.setex(KEY_PREFIX + key, ttl_seconds, raw)
        else:
            self.client.set(KEY_PREFIX + key, raw)

    def delete(self, key: str) -> None:
        self.client.delete(KEY_PREFIX + key)


class InMemoryCache(CacheBackend):
    """Process-local TTL cache; values are JSON round-tripped like the Redis backend."""

    def __init__(self):
        self._store: dict[str, tuple[float | None, str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            data = self._store.get(key)
            if data is None:
                return None
            expire_at, raw = data
            if expire_at is not None and expire_at < time.monotonic():
                self._store.pop(key, None)
                return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        expire_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        raw = json.dumps(value, default=str)
        with self._lock:
            self._store[key] = (expire_at, raw)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


_CACHE: CacheBackend | None = None


def get_cache() -> CacheBackend:
    global _CACHE
    if _CACHE is not None:
        return _CACHE

    settings = get_settings()
    try:
        _CACHE = RedisCache(settings.redis_url)
    except Exception as exc:  # noqa: BLE001
        LOGGER.info("Redis unavailable (%s); using in-process route cache", exc.__class__.__name__)
        _CACHE = InMemoryCache()
    return _CACHE


def reset_cache(backend: CacheBackend | None = None) -> None:
    global _CACHE
    _CACHE = backend
