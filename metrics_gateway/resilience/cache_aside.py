"""
CacheAsideComputer - Memoizes computed results in the shared store with a TTL.

Features:
- Hit: deserialize and return, no recomputation, no TTL refresh
- Miss: compute, store with a fixed TTL, return
- Absent results (MetricsNotFoundError) are never cached
- Optional single-flight: concurrent misses on one key share one computation
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable

from metrics_gateway.monitoring.metrics import get_metrics
from metrics_gateway.resilience.errors import ComputeError, ServiceError
from metrics_gateway.store.kv import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60


class _Flight:
    """A computation in progress that other callers can wait on."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.payload: str | None = None
        self.error: BaseException | None = None


class CacheAsideComputer:
    """
    Cache-aside wrapper around a JSON-serializable computation.

    Values returned on a miss are round-tripped through the same JSON encoding
    used for storage, so a hit and the miss that filled it return equal data.

    Usage:
        cache = CacheAsideComputer(store, ttl_seconds=60)
        summary = cache.get_or_compute("summary:cpu", lambda: summarize(...))
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        single_flight: bool = True,
    ) -> None:
        self._store = store
        self.ttl_seconds = ttl_seconds
        self.single_flight = single_flight
        self._in_flight: dict[str, _Flight] = {}
        self._lock = threading.Lock()

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        """Return the cached value for key, computing and storing it on a miss.

        Args:
            key: Cache key
            compute: Zero-argument callable producing a JSON-serializable value

        Returns:
            The cached or freshly computed value

        Raises:
            MetricsNotFoundError: If compute found nothing (not cached)
            ComputeError: If compute failed unexpectedly
            StoreUnavailableError: If the cache store failed
        """
        cached = self._lookup(key)
        if cached is not None:
            return cached

        if not self.single_flight:
            return json.loads(self._compute_and_store(key, compute))

        with self._lock:
            flight = self._in_flight.get(key)
            leader = flight is None
            if flight is None:
                flight = _Flight()
                self._in_flight[key] = flight

        if not leader:
            logger.debug("Waiting for in-flight computation of %s", key)
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return json.loads(flight.payload)  # type: ignore[arg-type]

        try:
            # A caller that missed just before the previous leader stored
            # its result must not compute again
            stored = self._read(key)
            flight.payload = stored if stored is not None else self._compute_and_store(key, compute)
        except BaseException as e:
            flight.error = e
            raise
        finally:
            with self._lock:
                self._in_flight.pop(key, None)
            flight.done.set()

        return json.loads(flight.payload)

    def _read(self, key: str) -> str | None:
        """Return the stored payload for key if present and decodable."""
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            json.loads(raw)
        except ValueError:
            logger.warning("Ignoring undecodable cache entry for %s", key)
            return None
        return raw

    def _lookup(self, key: str) -> Any | None:
        raw = self._read(key)
        metrics = get_metrics()
        if raw is None:
            logger.debug("Cache MISS: %s", key)
            if metrics:
                metrics.record_cache_lookup(hit=False)
            return None

        value = json.loads(raw)
        logger.debug("Cache HIT: %s", key)
        if metrics:
            metrics.record_cache_lookup(hit=True)
        return value

    def _compute_and_store(self, key: str, compute: Callable[[], Any]) -> str:
        try:
            value = compute()
        except ServiceError:
            raise
        except Exception as e:
            logger.error("Computation for %s failed: %s", key, e)
            raise ComputeError(f"Failed to compute {key}: {e}") from e

        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise ComputeError(f"Result for {key} is not serializable: {e}") from e

        self._store.set(key, payload, self.ttl_seconds)
        logger.debug("Cache SET: %s (TTL: %ss)", key, self.ttl_seconds)
        return payload
