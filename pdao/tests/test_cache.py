# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the TTL-tagged local cache.
"""

import json
from unittest.mock import MagicMock, patch

import redis

from pdao.services.cache import LocalCache, MemoryStore, RedisStore, create_cache
from pdao.tests.conftest import FakeClock


class TestLocalCache:
    """Test cache expiry semantics."""

    def setup_method(self):
        """Set up a cache on a fake clock."""
        self.clock = FakeClock()
        self.store = MemoryStore()
        self.cache = LocalCache(self.store, namespace="pdao", default_ttl_ms=1000, clock=self.clock)

    def test_set_then_get(self):
        """A fresh entry is returned."""
        self.cache.set("members", [{"id": 1}])

        assert self.cache.get("members") == [{"id": 1}]

    def test_entry_shape(self):
        """Entries carry data, timestamp and TTL under the namespaced key."""
        self.cache.set("members", ["a"], ttl_ms=500)

        entry = self.store.read("pdao:members")
        assert entry == {"data": ["a"], "timestamp": self.clock.now, "ttl": 500}

    def test_entry_valid_until_ttl(self):
        """An entry exactly as old as its TTL is still served."""
        self.cache.set("members", ["a"])
        self.clock.advance(1000)

        assert self.cache.get("members") == ["a"]

    def test_expired_entry_is_absent_and_invalidated(self):
        """An entry older than its TTL reads as absent and is removed."""
        self.cache.set("members", ["a"])
        self.clock.advance(1001)

        assert self.cache.get("members") is None
        assert self.cache.peek("members") is None

    def test_fresh_set_after_expiry(self):
        """Setting again after expiry serves the new value."""
        self.cache.set("members", ["old"])
        self.clock.advance(5000)
        assert self.cache.get("members") is None

        self.cache.set("members", ["new"])

        assert self.cache.get("members") == ["new"]

    def test_per_entry_ttl(self):
        """Identity entries can outlive list entries."""
        self.cache.set("identity", {"id": 1}, ttl_ms=30 * 60 * 1000)
        self.cache.set("events", [], ttl_ms=10 * 60 * 1000)
        self.clock.advance(15 * 60 * 1000)

        assert self.cache.get("identity") == {"id": 1}
        assert self.cache.get("events") is None

    def test_invalidate(self):
        """Invalidated entries are gone."""
        self.cache.set("members", ["a"])
        self.cache.invalidate("members")

        assert self.cache.get("members") is None

    def test_peek_does_not_invalidate(self):
        """Peeking at an expired entry leaves it in place."""
        self.cache.set("members", ["a"])
        self.clock.advance(2000)

        assert self.cache.peek("members")["data"] == ["a"]
        assert self.store.read("pdao:members") is not None

    def test_namespaces_are_isolated(self):
        """Two caches on one store do not see each other's keys."""
        other = LocalCache(self.store, namespace="other", clock=self.clock)
        self.cache.set("members", ["a"])

        assert other.get("members") is None


class TestRedisStore:
    """Test the Redis-backed store with a mocked client."""

    def setup_method(self):
        """Set up a store with a mocked redis client."""
        self.client = MagicMock()
        self.store = RedisStore("redis://localhost:6379", client=self.client)

    def test_write_serializes_json(self):
        """Entries are stored as JSON."""
        self.store.write("pdao:members", {"data": [1], "timestamp": 5, "ttl": 10})

        key, raw = self.client.set.call_args[0]
        assert key == "pdao:members"
        assert json.loads(raw) == {"data": [1], "timestamp": 5, "ttl": 10}

    def test_read_deserializes(self):
        """Stored JSON is decoded back into an entry."""
        self.client.get.return_value = json.dumps({"data": "x", "timestamp": 1, "ttl": 2})

        assert self.store.read("k") == {"data": "x", "timestamp": 1, "ttl": 2}

    def test_read_miss(self):
        """Missing keys read as None."""
        self.client.get.return_value = None

        assert self.store.read("k") is None

    def test_redis_error_reads_as_miss(self):
        """Connection errors degrade to a cache miss."""
        self.client.get.side_effect = redis.ConnectionError("down")

        assert self.store.read("k") is None

    def test_undecodable_entry_is_miss(self):
        """Garbage in the store is ignored."""
        self.client.get.return_value = "not json"

        assert self.store.read("k") is None

    def test_is_available(self):
        """Availability follows ping."""
        self.client.ping.return_value = True
        assert self.store.is_available() is True

        self.client.ping.side_effect = redis.ConnectionError("down")
        assert self.store.is_available() is False

    def test_cache_over_redis_enforces_ttl(self):
        """Expiry is enforced by the cache, not by Redis."""
        clock = FakeClock()
        cache = LocalCache(self.store, namespace="pdao", default_ttl_ms=100, clock=clock)
        self.client.get.return_value = json.dumps({"data": [1], "timestamp": clock.now - 500, "ttl": 100})

        assert cache.get("members") is None
        self.client.delete.assert_called_once_with("pdao:members")


class TestCreateCache:
    """Test the cache factory."""

    def test_memory_backend(self):
        """The default backend is in-process."""
        cache = create_cache("memory")

        assert isinstance(cache.store, MemoryStore)

    @patch('pdao.services.cache.redis.from_url')
    def test_redis_backend(self, mock_from_url):
        """The redis backend connects with redis-py."""
        mock_from_url.return_value.ping.return_value = True

        cache = create_cache("redis", "redis://cache:6379", namespace="station")

        mock_from_url.assert_called_once_with("redis://cache:6379", decode_responses=True)
        assert isinstance(cache.store, RedisStore)
        assert cache.namespace == "station"
