"""Unreliable external dependency and the breaker-guarded client that calls it.

The simulated service fails according to an injectable ``FaultInjector`` so
tests can script exact success/failure sequences instead of relying on chance.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol

from metrics_gateway.resilience.circuit_breaker import CircuitBreaker, CircuitState
from metrics_gateway.resilience.errors import ExternalOperationFailure, ExternalTimeoutError

logger = logging.getLogger(__name__)


class ExternalService(Protocol):
    """Protocol for the external data dependency."""

    def invoke(self) -> dict[str, Any]:
        """Fetch one payload. Raises ExternalOperationFailure on failure."""
        ...


class FaultInjector:
    """Decides whether the next external call fails.

    Scripted outcomes are consumed first; after that each call fails with
    probability ``fault_rate`` drawn from a seeded generator.
    """

    def __init__(
        self,
        fault_rate: float = 0.0,
        seed: int | None = None,
        script: Iterable[bool] | None = None,
    ) -> None:
        if not 0.0 <= fault_rate <= 1.0:
            raise ValueError("fault_rate must be between 0 and 1.")
        self.fault_rate = fault_rate
        self._rng = random.Random(seed)
        self._script: deque[bool] = deque(script or ())
        self._lock = threading.Lock()

    def push(self, *outcomes: bool) -> None:
        """Queue scripted outcomes (True means fail)."""
        with self._lock:
            self._script.extend(outcomes)

    def should_fail(self) -> bool:
        with self._lock:
            if self._script:
                return self._script.popleft()
            return self._rng.random() < self.fault_rate


class SimulatedExternalService:
    """Stand-in for a flaky upstream API."""

    def __init__(
        self,
        faults: FaultInjector | None = None,
        latency_seconds: float = 0.0,
        seed: int | None = None,
    ) -> None:
        self.faults = faults or FaultInjector()
        self.latency_seconds = latency_seconds
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self.calls = 0

    def invoke(self) -> dict[str, Any]:
        with self._lock:
            self.calls += 1
        if self.latency_seconds:
            time.sleep(self.latency_seconds)
        if self.faults.should_fail():
            raise ExternalOperationFailure("External service failed")
        return {
            "source": "simulated",
            "value": round(self._rng.uniform(0, 100), 2),
            "fetched_at": datetime.now(timezone.utc).isoformat(),
        }


class ExternalDataClient:
    """Calls the external service with a bounded timeout, through a circuit breaker.

    A timed-out call counts as a failure against the breaker. The worker
    thread running it is abandoned, not interrupted.
    """

    def __init__(
        self,
        service: ExternalService,
        breaker: CircuitBreaker,
        timeout_seconds: float = 2.0,
        max_workers: int = 4,
    ) -> None:
        self._service = service
        self.breaker = breaker
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="external-call"
        )

    @property
    def circuit_state(self) -> CircuitState:
        return self.breaker.state

    def fetch(self) -> dict[str, Any]:
        """Fetch external data.

        Raises:
            CircuitOpenError: If the breaker short-circuited the call
            ExternalOperationFailure: If the call failed or timed out
        """
        return self.breaker.call(self._invoke_with_timeout)

    def _invoke_with_timeout(self) -> dict[str, Any]:
        future = self._executor.submit(self._service.invoke)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.warning("External call timed out after %ss", self.timeout_seconds)
            raise ExternalTimeoutError(self.timeout_seconds) from None

    def close(self) -> None:
        self._executor.shutdown(wait=False)
