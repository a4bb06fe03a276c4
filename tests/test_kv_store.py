"""Tests for the shared key-value store backends."""

from unittest.mock import MagicMock

import pytest
import fakeredis
import redis

from metrics_gateway.resilience.errors import StoreUnavailableError
from metrics_gateway.store.kv import (
    TTL_MISSING,
    TTL_NO_EXPIRY,
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    create_kv_store,
)


# ---------------------------------------------------------------------------
# InMemoryKeyValueStore
# ---------------------------------------------------------------------------


class TestInMemoryKeyValueStore:
    def test_satisfies_protocol(self, kv_store) -> None:
        assert isinstance(kv_store, KeyValueStore)

    def test_get_missing_returns_none(self, kv_store) -> None:
        assert kv_store.get("nope") is None

    def test_set_and_get(self, kv_store) -> None:
        kv_store.set("k", "v", ttl_seconds=10)
        assert kv_store.get("k") == "v"

    def test_set_expires_after_ttl(self, kv_store, clock) -> None:
        kv_store.set("k", "v", ttl_seconds=10)
        clock.advance(9.9)
        assert kv_store.get("k") == "v"
        clock.advance(0.1)
        assert kv_store.get("k") is None

    def test_set_overwrites_previous_value(self, kv_store) -> None:
        kv_store.set("k", "old", ttl_seconds=10)
        kv_store.set("k", "new", ttl_seconds=10)
        assert kv_store.get("k") == "new"

    def test_incr_starts_at_one_without_expiry(self, kv_store) -> None:
        assert kv_store.incr("c") == 1
        assert kv_store.incr("c") == 2
        assert kv_store.ttl("c") == TTL_NO_EXPIRY

    def test_expire_missing_key(self, kv_store) -> None:
        assert kv_store.expire("c", 5) is False

    def test_expire_and_ttl(self, kv_store, clock) -> None:
        kv_store.incr("c")
        assert kv_store.expire("c", 5) is True
        assert kv_store.ttl("c") == 5
        clock.advance(2.5)
        assert kv_store.ttl("c") == 3
        clock.advance(2.5)
        assert kv_store.ttl("c") == TTL_MISSING

    def test_delete(self, kv_store) -> None:
        kv_store.set("k", "v", ttl_seconds=10)
        assert kv_store.delete("k") is True
        assert kv_store.delete("k") is False

    def test_incr_window_sets_ttl_only_on_first_hit(self, kv_store, clock) -> None:
        assert kv_store.incr_window("w", 60) == (1, 60)
        clock.advance(20)
        count, ttl = kv_store.incr_window("w", 60)
        assert count == 2
        assert ttl == 40

    def test_incr_window_restarts_after_expiry(self, kv_store, clock) -> None:
        kv_store.incr_window("w", 60)
        kv_store.incr_window("w", 60)
        clock.advance(60)
        assert kv_store.incr_window("w", 60) == (1, 60)

    def test_incr_window_repairs_counter_without_ttl(self, kv_store) -> None:
        kv_store.incr("w")
        count, ttl = kv_store.incr_window("w", 30)
        assert count == 2
        assert ttl == 30

    def test_clear(self, kv_store) -> None:
        kv_store.set("k", "v", ttl_seconds=10)
        kv_store.clear()
        assert kv_store.get("k") is None


# ---------------------------------------------------------------------------
# RedisKeyValueStore
# ---------------------------------------------------------------------------


class TestRedisKeyValueStore:
    def test_get_returns_value(self) -> None:
        client = MagicMock()
        client.get.return_value = "payload"
        assert RedisKeyValueStore(client).get("k") == "payload"

    def test_get_decodes_bytes(self) -> None:
        client = MagicMock()
        client.get.return_value = b"payload"
        assert RedisKeyValueStore(client).get("k") == "payload"

    def test_get_none(self) -> None:
        client = MagicMock()
        client.get.return_value = None
        assert RedisKeyValueStore(client).get("k") is None

    def test_set_passes_ttl(self) -> None:
        client = MagicMock()
        RedisKeyValueStore(client).set("summary:cpu", "{}", ttl_seconds=60)
        client.set.assert_called_once_with("summary:cpu", "{}", ex=60)

    def test_incr_window_runs_script_atomically(self) -> None:
        client = MagicMock()
        client.eval.return_value = [3, 42]
        store = RedisKeyValueStore(client)

        assert store.incr_window("rate_limit:1.2.3.4", 60) == (3, 42)

        args = client.eval.call_args[0]
        assert "INCR" in args[0] and "EXPIRE" in args[0]
        assert args[1:] == (1, "rate_limit:1.2.3.4", 60)
        client.incr.assert_not_called()

    def test_incr_window_script_anchors_and_repairs_ttl(self) -> None:
        client = fakeredis.FakeRedis(decode_responses=True)
        store = RedisKeyValueStore(client)
        key = "rate_limit:1.2.3.4"

        assert store.incr_window(key, 60) == (1, 60)

        # Later hits leave the window where it is
        client.expire(key, 10)
        assert store.incr_window(key, 60) == (2, 10)

        # A counter that lost its TTL gets one back
        client.persist(key)
        assert store.incr_window(key, 60) == (3, 60)
        assert client.ttl(key) == 60

    def test_ttl_and_expire(self) -> None:
        client = MagicMock()
        client.ttl.return_value = 17
        client.expire.return_value = 1
        store = RedisKeyValueStore(client)
        assert store.ttl("k") == 17
        assert store.expire("k", 10) is True

    def test_delete(self) -> None:
        client = MagicMock()
        client.delete.return_value = 0
        assert RedisKeyValueStore(client).delete("k") is False

    @pytest.mark.parametrize("method, args", [
        ("get", ("k",)),
        ("set", ("k", "v", 5)),
        ("incr", ("k",)),
        ("ttl", ("k",)),
        ("incr_window", ("k", 60)),
        ("ping", ()),
    ])
    def test_redis_errors_become_store_unavailable(self, method, args) -> None:
        client = MagicMock()
        for name in ("get", "set", "incr", "ttl", "eval", "ping"):
            getattr(client, name).side_effect = redis.ConnectionError("Connection refused")
        store = RedisKeyValueStore(client)

        with pytest.raises(StoreUnavailableError):
            getattr(store, method)(*args)

    def test_timeout_becomes_store_unavailable(self) -> None:
        client = MagicMock()
        client.get.side_effect = redis.TimeoutError("Timeout reading from socket")
        with pytest.raises(StoreUnavailableError):
            RedisKeyValueStore(client).get("k")


# ---------------------------------------------------------------------------
# create_kv_store
# ---------------------------------------------------------------------------


class TestCreateKvStore:
    def test_in_memory_without_url(self) -> None:
        assert isinstance(create_kv_store(None), InMemoryKeyValueStore)

    def test_redis_with_url(self) -> None:
        # from_url does not connect until the first command
        store = create_kv_store("redis://localhost:6379/0", socket_timeout=0.5)
        assert isinstance(store, RedisKeyValueStore)
