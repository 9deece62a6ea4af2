# SPDX-License-Identifier: Apache-2.0

"""
TTL-tagged local cache for the field station.

Every entry is stored as ``{data, timestamp, ttl}`` and expiry is enforced
here, not by the store: a ``get`` on an entry older than its TTL returns
absent and removes the entry. The cache instance is passed explicitly to
each view that needs it; keys are prefixed with the instance namespace.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import redis
from opentelemetry import trace

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class MemoryStore:
    """In-process store; shared by every view in the same process."""

    def __init__(self):
        self._entries: Dict[str, Dict[str, Any]] = {}

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        return self._entries.get(key)

    def write(self, key: str, entry: Dict[str, Any]) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def is_available(self) -> bool:
        return True


class RedisStore:
    """
    Redis-backed store so cached lists survive a station restart.

    Entries are JSON encoded. Redis errors are logged and treated as a miss;
    the cache is never the source of truth.
    """

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.client = client or redis.from_url(redis_url, decode_responses=True)

    def read(self, key: str) -> Optional[Dict[str, Any]]:
        with tracer.start_as_current_span("redis.get") as span:
            span.set_attribute("redis.key", key)
            try:
                raw = self.client.get(key)
            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis get failed for key {key}: {str(e)}")
                return None

            if raw is None:
                span.set_attribute("redis.result", "not_found")
                return None
            try:
                return json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                logger.warning(f"Discarding undecodable cache entry {key}")
                return None

    def write(self, key: str, entry: Dict[str, Any]) -> None:
        with tracer.start_as_current_span("redis.set") as span:
            span.set_attribute("redis.key", key)
            try:
                self.client.set(key, json.dumps(entry, default=str))
                span.set_attribute("redis.result", "success")
            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis set failed for key {key}: {str(e)}")

    def delete(self, key: str) -> None:
        with tracer.start_as_current_span("redis.delete") as span:
            span.set_attribute("redis.key", key)
            try:
                self.client.delete(key)
            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(f"Redis delete failed for key {key}: {str(e)}")

    def is_available(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


class LocalCache:
    """
    Namespaced cache with per-entry time-to-live.

    Args:
        store: backing store (``MemoryStore`` or ``RedisStore``)
        namespace: prefix added to every key
        default_ttl_ms: TTL used when ``set`` is not given one
        clock: millisecond clock, injectable for tests
    """

    def __init__(
        self,
        store=None,
        namespace: str = "pdao",
        default_ttl_ms: int = 10 * 60 * 1000,
        clock: Callable[[], int] = now_ms
    ):
        self.store = store if store is not None else MemoryStore()
        self.namespace = namespace
        self.default_ttl_ms = default_ttl_ms
        self.clock = clock

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or ``None`` when absent or expired."""
        entry = self.store.read(self._key(key))
        if entry is None:
            return None
        if self.is_expired(entry):
            logger.debug(f"Cache entry {key} expired")
            self.invalidate(key)
            return None
        return entry["data"]

    def peek(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the raw entry even when expired; never invalidates."""
        return self.store.read(self._key(key))

    def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> Dict[str, Any]:
        """Store ``value`` stamped with the current time; starts a new TTL window."""
        entry = {
            "data": value,
            "timestamp": self.clock(),
            "ttl": ttl_ms if ttl_ms is not None else self.default_ttl_ms,
        }
        self.store.write(self._key(key), entry)
        return entry

    def invalidate(self, key: str) -> None:
        self.store.delete(self._key(key))

    def is_expired(self, entry: Dict[str, Any]) -> bool:
        ttl = entry.get("ttl", self.default_ttl_ms)
        return self.clock() - entry.get("timestamp", 0) > ttl


def create_cache(backend: str = "memory", redis_url: Optional[str] = None,
                 namespace: str = "pdao", default_ttl_ms: int = 10 * 60 * 1000) -> LocalCache:
    """Factory function to create the station cache."""
    if backend == "redis":
        store = RedisStore(redis_url or "redis://localhost:6379")
        if not store.is_available():
            logger.warning("Redis not reachable, cached lists will not survive a restart")
    else:
        store = MemoryStore()
    logger.info(f"Local cache initialized with {backend} store")
    return LocalCache(store, namespace=namespace, default_ttl_ms=default_ttl_ms)
