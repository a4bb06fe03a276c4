"""Shared key-value store used for rate-limit counters and cached summaries.

Both the rate limiter and the summary cache talk to this store through the
``KeyValueStore`` protocol. Production deployments point ``REDIS_URL`` at a
Redis instance shared by every API process; without it the service falls back
to an in-memory store that is only correct for a single process.

Every backend failure is raised as ``StoreUnavailableError`` so callers never
have to know which client library sits underneath.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Protocol, runtime_checkable

import redis

from metrics_gateway.resilience.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# Redis TTL sentinels
TTL_MISSING = -2
TTL_NO_EXPIRY = -1

# INCR and the first-hit EXPIRE must run as one unit, otherwise a crash between
# them leaves a counter that never expires. A counter found without a TTL is
# given one on the spot.
_INCR_WINDOW_SCRIPT = """
local count = redis.call("INCR", KEYS[1])
if count == 1 then
    redis.call("EXPIRE", KEYS[1], ARGV[1])
end
local ttl = redis.call("TTL", KEYS[1])
if ttl == -1 then
    redis.call("EXPIRE", KEYS[1], ARGV[1])
    ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for shared key-value store implementations."""

    def get(self, key: str) -> str | None:
        """Return the value stored at key, or None if absent or expired."""
        ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value at key, expiring after ttl_seconds."""
        ...

    def delete(self, key: str) -> bool:
        """Delete key. Returns True if it existed."""
        ...

    def incr(self, key: str) -> int:
        """Atomically increment the integer at key and return the new value."""
        ...

    def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a TTL on an existing key. Returns False if the key is absent."""
        ...

    def ttl(self, key: str) -> int:
        """Return remaining seconds, -1 for no expiry, -2 for a missing key."""
        ...

    def incr_window(self, key: str, window_seconds: int) -> tuple[int, int]:
        """Increment a windowed counter, setting its TTL on the first hit.

        Returns:
            Tuple of (count, ttl_seconds) observed atomically.
        """
        ...

    def ping(self) -> bool:
        """Return True if the store is reachable."""
        ...


class InMemoryKeyValueStore:
    """In-memory store for local development and tests.

    Expiry is evaluated lazily against ``clock`` (monotonic by default), so
    tests can advance time without sleeping.
    """

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> tuple[str, float | None] | None:
        """Return the entry at key, dropping it if expired. Caller holds the lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return entry

    def _remaining(self, expires_at: float | None) -> int:
        if expires_at is None:
            return TTL_NO_EXPIRY
        return max(1, math.ceil(expires_at - self._clock()))

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def incr(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            value, expires_at = entry if entry else ("0", None)
            count = int(value) + 1
            self._data[key] = (str(count), expires_at)
            return count

    def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            self._data[key] = (entry[0], self._clock() + ttl_seconds)
            return True

    def ttl(self, key: str) -> int:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return TTL_MISSING
            return self._remaining(entry[1])

    def incr_window(self, key: str, window_seconds: int) -> tuple[int, int]:
        with self._lock:
            entry = self._live(key)
            value, expires_at = entry if entry else ("0", None)
            count = int(value) + 1
            if count == 1 or expires_at is None:
                expires_at = self._clock() + window_seconds
            self._data[key] = (str(count), expires_at)
            return count, self._remaining(expires_at)

    def ping(self) -> bool:
        return True

    def clear(self) -> None:
        """Remove every key (used in tests)."""
        with self._lock:
            self._data.clear()


class RedisKeyValueStore:
    """Redis-backed store shared by all API processes."""

    def __init__(self, redis_client: redis.Redis) -> None:
        """Initialize with a Redis client.

        Args:
            redis_client: A redis.Redis (or compatible) instance created with
                ``decode_responses=True``.
        """
        self._client = redis_client

    @classmethod
    def from_url(cls, redis_url: str, socket_timeout: float = 1.0) -> "RedisKeyValueStore":
        """Create a store from a Redis URL with bounded socket timeouts."""
        client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    @contextmanager
    def _errors(self, operation: str, key: str) -> Iterator[None]:
        try:
            yield
        except redis.RedisError as e:
            logger.error("Redis %s failed for %s: %s", operation, key, e)
            raise StoreUnavailableError(f"Redis {operation} failed: {e}") from e

    def get(self, key: str) -> str | None:
        with self._errors("GET", key):
            raw = self._client.get(key)
        if raw is None:
            return None
        return raw.decode() if isinstance(raw, bytes) else str(raw)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._errors("SET", key):
            self._client.set(key, value, ex=ttl_seconds)

    def delete(self, key: str) -> bool:
        with self._errors("DEL", key):
            return bool(self._client.delete(key))

    def incr(self, key: str) -> int:
        with self._errors("INCR", key):
            return int(self._client.incr(key))

    def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._errors("EXPIRE", key):
            return bool(self._client.expire(key, ttl_seconds))

    def ttl(self, key: str) -> int:
        with self._errors("TTL", key):
            return int(self._client.ttl(key))

    def incr_window(self, key: str, window_seconds: int) -> tuple[int, int]:
        with self._errors("EVAL", key):
            count, ttl = self._client.eval(_INCR_WINDOW_SCRIPT, 1, key, window_seconds)  # type: ignore[misc]
        return int(count), int(ttl)

    def ping(self) -> bool:
        with self._errors("PING", "-"):
            return bool(self._client.ping())


def create_kv_store(redis_url: str | None, socket_timeout: float = 1.0) -> KeyValueStore:
    """Factory: return a Redis-backed store if a URL is given, else in-memory."""
    if redis_url:
        logger.info("Key-value store: Redis at %s", redis_url.split("@")[-1])
        return RedisKeyValueStore.from_url(redis_url, socket_timeout=socket_timeout)
    logger.info("Key-value store: InMemory (single-process only)")
    return InMemoryKeyValueStore()
