"""Tests for the simulated external service and its guarded client."""

import threading

import pytest

from metrics_gateway.external import ExternalDataClient, FaultInjector, SimulatedExternalService
from metrics_gateway.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from metrics_gateway.resilience.errors import (
    CircuitOpenError,
    ExternalOperationFailure,
    ExternalTimeoutError,
)


class TestFaultInjector:
    def test_script_is_consumed_in_order(self) -> None:
        faults = FaultInjector(script=[True, False, True])
        assert [faults.should_fail() for _ in range(3)] == [True, False, True]

    def test_falls_back_to_rate_after_script(self) -> None:
        faults = FaultInjector(fault_rate=0.0, script=[True])
        assert faults.should_fail() is True
        assert faults.should_fail() is False

    def test_always_fails_at_rate_one(self) -> None:
        faults = FaultInjector(fault_rate=1.0)
        assert all(faults.should_fail() for _ in range(10))

    def test_seeded_draws_are_repeatable(self) -> None:
        first = FaultInjector(fault_rate=0.5, seed=42)
        second = FaultInjector(fault_rate=0.5, seed=42)
        assert [first.should_fail() for _ in range(20)] == [
            second.should_fail() for _ in range(20)
        ]

    def test_push_appends_outcomes(self) -> None:
        faults = FaultInjector()
        faults.push(True, True)
        assert faults.should_fail() and faults.should_fail()
        assert faults.should_fail() is False

    def test_rejects_invalid_rate(self) -> None:
        with pytest.raises(ValueError):
            FaultInjector(fault_rate=1.5)


class TestSimulatedExternalService:
    def test_success_payload(self) -> None:
        service = SimulatedExternalService(seed=1)
        data = service.invoke()
        assert data["source"] == "simulated"
        assert 0 <= data["value"] <= 100
        assert "fetched_at" in data
        assert service.calls == 1

    def test_injected_failure(self) -> None:
        service = SimulatedExternalService(FaultInjector(script=[True]))
        with pytest.raises(ExternalOperationFailure):
            service.invoke()
        assert service.calls == 1


class TestExternalDataClient:
    @pytest.fixture
    def breaker(self, clock) -> CircuitBreaker:
        return CircuitBreaker(
            "external_data",
            CircuitBreakerConfig(failure_threshold=3, reset_timeout_seconds=30.0),
            clock=clock,
        )

    def test_fetch_returns_data(self, breaker) -> None:
        client = ExternalDataClient(SimulatedExternalService(seed=3), breaker)
        try:
            assert client.fetch()["source"] == "simulated"
            assert client.circuit_state == CircuitState.CLOSED
        finally:
            client.close()

    def test_failures_open_circuit_and_stop_calls(self, breaker) -> None:
        service = SimulatedExternalService(FaultInjector(fault_rate=1.0))
        client = ExternalDataClient(service, breaker)
        try:
            for _ in range(3):
                with pytest.raises(ExternalOperationFailure):
                    client.fetch()
            with pytest.raises(CircuitOpenError):
                client.fetch()
            assert service.calls == 3
            assert client.circuit_state == CircuitState.OPEN
        finally:
            client.close()

    def test_timeout_counts_as_failure(self, breaker) -> None:
        release = threading.Event()

        class HangingService:
            def invoke(self) -> dict:
                release.wait(timeout=5)
                return {}

        client = ExternalDataClient(HangingService(), breaker, timeout_seconds=0.05)
        try:
            with pytest.raises(ExternalTimeoutError):
                client.fetch()
            assert breaker.failure_count == 1
        finally:
            release.set()
            client.close()
