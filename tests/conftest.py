from __future__ import annotations

from typing import Generator

import pytest
from fastapi.testclient import TestClient

import metrics_gateway.monitoring.metrics as metrics_module
import metrics_gateway.monitoring.sentry_service as sentry_module
from metrics_gateway.api import deps
from metrics_gateway.external import ExternalDataClient, FaultInjector, SimulatedExternalService
from metrics_gateway.main import app
from metrics_gateway.resilience.cache_aside import CacheAsideComputer
from metrics_gateway.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from metrics_gateway.resilience.rate_limit import FixedWindowRateLimiter, RateLimitConfig
from metrics_gateway.store.kv import InMemoryKeyValueStore
from metrics_gateway.store.metrics import InMemoryMetricStore


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store(clock: FakeClock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture(autouse=True)
def _reset_global_monitoring() -> Generator[None, None, None]:
    """Keep the Prometheus and Sentry singletons from leaking between tests."""
    metrics_module._metrics = None
    sentry_module._service = None
    yield
    metrics_module._metrics = None
    sentry_module._service = None


class GatewayHarness:
    """Collaborators wired into the app for one API test."""

    def __init__(self, clock: FakeClock, kv_store: InMemoryKeyValueStore) -> None:
        self.clock = clock
        self.kv_store = kv_store
        self.metric_store = InMemoryMetricStore()
        self.rate_limiter = FixedWindowRateLimiter(
            kv_store, RateLimitConfig(max_requests=5, window_seconds=60)
        )
        self.breaker = CircuitBreaker(
            "external_data",
            CircuitBreakerConfig(failure_threshold=3, reset_timeout_seconds=30.0),
            clock=clock,
        )
        self.summary_cache = CacheAsideComputer(kv_store, ttl_seconds=60)
        self.faults = FaultInjector(fault_rate=0.0)
        self.external_service = SimulatedExternalService(self.faults, seed=7)
        self.external_client = ExternalDataClient(
            self.external_service, self.breaker, timeout_seconds=1.0
        )


@pytest.fixture
def harness(clock: FakeClock, kv_store: InMemoryKeyValueStore) -> Generator[GatewayHarness, None, None]:
    h = GatewayHarness(clock, kv_store)
    yield h
    h.external_client.close()


@pytest.fixture
def client(harness: GatewayHarness) -> Generator[TestClient, None, None]:
    """Return a TestClient with every collaborator overridden."""
    app.dependency_overrides[deps.get_metric_store] = lambda: harness.metric_store
    app.dependency_overrides[deps.get_rate_limiter] = lambda: harness.rate_limiter
    app.dependency_overrides[deps.get_summary_cache] = lambda: harness.summary_cache
    app.dependency_overrides[deps.get_external_client] = lambda: harness.external_client
    app.dependency_overrides[deps.get_kv_store] = lambda: harness.kv_store
    app.dependency_overrides[deps.get_circuit_breaker] = lambda: harness.breaker
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
