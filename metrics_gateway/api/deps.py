"""Process-wide collaborators, built lazily from settings.

Each provider is cached so every request shares one rate limiter, one circuit
breaker and one metric store. Tests swap them with ``app.dependency_overrides``
or call ``reset_dependencies()`` after changing the environment.
"""

from __future__ import annotations

from functools import lru_cache

from metrics_gateway.config import Settings
from metrics_gateway.external import ExternalDataClient, FaultInjector, SimulatedExternalService
from metrics_gateway.resilience.cache_aside import CacheAsideComputer
from metrics_gateway.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from metrics_gateway.resilience.rate_limit import FixedWindowRateLimiter, RateLimitConfig
from metrics_gateway.store.kv import KeyValueStore, create_kv_store
from metrics_gateway.store.metrics import InMemoryMetricStore, MetricStore

EXTERNAL_BREAKER_NAME = "external_data"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return settings loaded from the environment."""
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_kv_store() -> KeyValueStore:
    """Return the shared key-value store."""
    settings = get_settings()
    return create_kv_store(settings.redis_url, settings.redis_socket_timeout_seconds)


@lru_cache(maxsize=1)
def get_metric_store() -> MetricStore:
    """Return the in-process metric sequence."""
    return InMemoryMetricStore()


@lru_cache(maxsize=1)
def get_rate_limiter() -> FixedWindowRateLimiter:
    """Return the ingestion rate limiter."""
    settings = get_settings()
    config = RateLimitConfig(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    return FixedWindowRateLimiter(get_kv_store(), config)


@lru_cache(maxsize=1)
def get_circuit_breaker() -> CircuitBreaker:
    """Return the breaker guarding the external data dependency."""
    settings = get_settings()
    config = CircuitBreakerConfig(
        failure_threshold=settings.circuit_failure_threshold,
        reset_timeout_seconds=settings.circuit_reset_timeout_seconds,
    )
    return CircuitBreaker(EXTERNAL_BREAKER_NAME, config)


@lru_cache(maxsize=1)
def get_summary_cache() -> CacheAsideComputer:
    """Return the cache-aside computer for metric summaries."""
    settings = get_settings()
    return CacheAsideComputer(
        get_kv_store(),
        ttl_seconds=settings.summary_cache_ttl_seconds,
        single_flight=settings.summary_single_flight,
    )


@lru_cache(maxsize=1)
def get_external_client() -> ExternalDataClient:
    """Return the breaker-guarded external data client."""
    settings = get_settings()
    faults = FaultInjector(
        fault_rate=settings.external_fault_rate,
        seed=settings.external_fault_seed,
    )
    service = SimulatedExternalService(faults, seed=settings.external_fault_seed)
    return ExternalDataClient(
        service,
        get_circuit_breaker(),
        timeout_seconds=settings.external_timeout_seconds,
    )


def reset_dependencies() -> None:
    """Clear every cached provider (used in tests)."""
    if get_external_client.cache_info().currsize:
        get_external_client().close()
    for provider in (
        get_settings,
        get_kv_store,
        get_metric_store,
        get_rate_limiter,
        get_circuit_breaker,
        get_summary_cache,
        get_external_client,
    ):
        provider.cache_clear()
