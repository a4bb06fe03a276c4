"""Fixed-window rate limiter backed by the shared key-value store."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from metrics_gateway.monitoring.metrics import get_metrics
from metrics_gateway.resilience.errors import (
    RateLimitedError,
    RateLimiterUnavailableError,
    StoreUnavailableError,
)
from metrics_gateway.store.kv import KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "rate_limit"


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int = 100
    window_seconds: int = 60


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admission check."""

    allowed: bool
    count: int
    limit: int
    retry_after_seconds: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class FixedWindowRateLimiter:
    """Caps requests per client within a window anchored at its first request.

    The counter for ``rate_limit:{client}`` gets its TTL exactly once, when it
    goes from 0 to 1. Later increments do not extend the window. If the store
    cannot be reached the request is rejected (fail closed).
    """

    def __init__(self, store: KeyValueStore, config: RateLimitConfig | None = None) -> None:
        self._store = store
        self.config = config or RateLimitConfig()

    @staticmethod
    def key_for(client_key: str) -> str:
        return f"{KEY_PREFIX}:{client_key}"

    def admit(self, client_key: str) -> RateLimitDecision:
        """Count one request for client_key and decide whether to admit it.

        Raises:
            RateLimiterUnavailableError: If the counter store failed
        """
        key = self.key_for(client_key)
        try:
            count, ttl = self._store.incr_window(key, self.config.window_seconds)
        except StoreUnavailableError as e:
            logger.error("Rate limiter store unavailable for %s: %s", client_key, e)
            raise RateLimiterUnavailableError(str(e)) from e

        metrics = get_metrics()
        if count > self.config.max_requests:
            # Retry hint must stay positive even if the key expired in between
            retry_after = ttl if ttl > 0 else self.config.window_seconds
            logger.info(
                "Rate limited %s: %d/%d, retry after %ds",
                client_key, count, self.config.max_requests, retry_after,
            )
            if metrics:
                metrics.record_rate_limit_decision(allowed=False)
            return RateLimitDecision(
                allowed=False,
                count=count,
                limit=self.config.max_requests,
                retry_after_seconds=retry_after,
            )

        if metrics:
            metrics.record_rate_limit_decision(allowed=True)
        return RateLimitDecision(allowed=True, count=count, limit=self.config.max_requests)

    def enforce(self, client_key: str) -> RateLimitDecision:
        """Admit client_key or raise RateLimitedError."""
        decision = self.admit(client_key)
        if not decision.allowed:
            raise RateLimitedError(client_key, decision.retry_after_seconds)
        return decision


def get_client_ip(request: Request) -> str:
    """Resolve the client IP from request headers or connection info."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",", maxsplit=1)[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return "unknown"
