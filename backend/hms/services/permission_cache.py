# Overview: Cache backends for permission resolution results.

"""
Permission Cache Backends

WHY: Permission checks run on every request. Results are cached per
principal with a TTL, and the AuthorizationEngine invalidates them on
every grant mutation (write-through).

CONTRACT: get(key) -> value or None, set(key, value, ttl), invalidate(key).
Backends raise CacheUnavailableError when the store cannot be reached;
reads treat that as a miss and recompute (fail open), while a
failed clear surfaces as CacheInvalidationError from the engine.
"""

from __future__ import annotations

import json
import threading
import time

import redis


class CacheUnavailableError(Exception):
    """Raised when the cache store cannot be reached."""
    pass


class PermissionCache:
    """Capability interface injected into the AuthorizationEngine."""

    def get(self, key: str):
        raise NotImplementedError

    def set(self, key: str, value, ttl: int) -> None:
        raise NotImplementedError

    def invalidate(self, key: str) -> None:
        raise NotImplementedError


class MemoryPermissionCache(PermissionCache):
    """
    Per-process TTL cache.

    Entries expire lazily on read. A lock keeps concurrent readers from
    seeing a half-written entry.
    """

    def __init__(self, clock=time.monotonic):
        self._entries: dict[str, tuple[float, object]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value, ttl: int) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class RedisPermissionCache(PermissionCache):
    """
    Shared cache for multi-process deployments.

    Values are stored as JSON; the engine only caches bools and lists of
    permission names.
    """

    def __init__(self, client: redis.Redis, prefix: str = "hms:"):
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "hms:") -> "RedisPermissionCache":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            retry_on_timeout=True,
        )
        return cls(client, prefix=prefix)

    def get(self, key: str):
        try:
            raw = self._client.get(self._prefix + key)
        except redis.RedisError as exc:
            raise CacheUnavailableError(str(exc)) from exc
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value, ttl: int) -> None:
        try:
            self._client.set(self._prefix + key, json.dumps(value), ex=ttl)
        except redis.RedisError as exc:
            raise CacheUnavailableError(str(exc)) from exc

    def invalidate(self, key: str) -> None:
        try:
            self._client.delete(self._prefix + key)
        except redis.RedisError as exc:
            raise CacheUnavailableError(str(exc)) from exc


def build_permission_cache(config) -> PermissionCache:
    """Build the backend named by PERMISSION_CACHE_BACKEND."""
    backend = (config.get("PERMISSION_CACHE_BACKEND") or "memory").lower()
    if backend == "redis":
        return RedisPermissionCache.from_url(config["REDIS_URL"])
    if backend == "memory":
        return MemoryPermissionCache()
    raise ValueError(f"Unknown PERMISSION_CACHE_BACKEND: {backend}")
