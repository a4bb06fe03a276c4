"""
CircuitBreaker - Stops calling a failing dependency, then checks for recovery with a trial call.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Dependency is failing, calls short-circuit
- HALF_OPEN: One trial call decides whether to close again

Transitions:
- CLOSED → OPEN: When failure_threshold consecutive failures are reached
- OPEN → HALF_OPEN: On the first call after reset_timeout has elapsed
- HALF_OPEN → CLOSED: When the trial call succeeds
- HALF_OPEN → OPEN: When the trial call fails and the count is at threshold
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, TypeVar

from metrics_gateway.monitoring.metrics import get_metrics
from metrics_gateway.monitoring.sentry_service import get_sentry
from metrics_gateway.resilience.errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker phases."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Short-circuiting calls
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 3  # Consecutive failures before opening
    reset_timeout_seconds: float = 30.0  # Time in OPEN before a trial call


class CircuitBreaker:
    """
    Circuit breaker guarding a single dependency.

    All state lives behind one lock and changes only inside ``call``. The
    wrapped operation itself runs outside the lock. While HALF_OPEN a single
    trial call is admitted at a time; concurrent callers are short-circuited
    until the trial settles.

    Usage:
        breaker = CircuitBreaker("external_data")

        try:
            data = breaker.call(client.invoke)
        except CircuitOpenError:
            return fallback()
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_at: float | None = None
        self._trial_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Current phase. OPEN → HALF_OPEN only happens on a call attempt."""
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def call(self, operation: Callable[[], T]) -> T:
        """Run operation through the breaker.

        Raises:
            CircuitOpenError: If the call was short-circuited
            Exception: Whatever operation raised, after recording the failure
        """
        with self._lock:
            is_trial = self._before_call()

        try:
            result = operation()
        except Exception:
            with self._lock:
                self._on_failure(is_trial)
            raise
        except BaseException:
            # Interrupted rather than failed: only give back the trial slot
            if is_trial:
                with self._lock:
                    self._trial_in_flight = False
            raise

        with self._lock:
            self._on_success(is_trial)
        return result

    def _before_call(self) -> bool:
        """Decide whether to attempt the call. Caller holds the lock.

        Returns True if this call is the HALF_OPEN trial.
        """
        if self._state == CircuitState.OPEN:
            remaining = self._time_until_half_open()
            if remaining > 0:
                self._short_circuit(remaining)
            self._transition(CircuitState.HALF_OPEN)

        if self._state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                self._short_circuit(0.0)
            self._trial_in_flight = True
            return True

        return False

    def _on_success(self, is_trial: bool) -> None:
        if is_trial:
            self._trial_in_flight = False
        if self._state == CircuitState.HALF_OPEN and is_trial:
            self._failure_count = 0
            self._transition(CircuitState.CLOSED)
        elif self._state == CircuitState.CLOSED:
            self._failure_count = 0

    def _on_failure(self, is_trial: bool) -> None:
        if is_trial:
            self._trial_in_flight = False
        self._failure_count += 1
        self._last_failure_at = self._clock()

        if self._state == CircuitState.OPEN:
            return
        if self._failure_count >= self.config.failure_threshold:
            self._transition(CircuitState.OPEN)

    def _time_until_half_open(self) -> float:
        if self._last_failure_at is None:
            return 0.0
        elapsed = self._clock() - self._last_failure_at
        return max(0.0, self.config.reset_timeout_seconds - elapsed)

    def _short_circuit(self, retry_after: float) -> None:
        metrics = get_metrics()
        if metrics:
            metrics.record_short_circuit()
        raise CircuitOpenError(self.name, self._state.value, retry_after)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        if new_state == CircuitState.OPEN:
            logger.warning(
                "Circuit %s: %s -> OPEN after %d consecutive failures",
                self.name, old_state.value, self._failure_count,
            )
        else:
            logger.info("Circuit %s: %s -> %s", self.name, old_state.value, new_state.value)

        metrics = get_metrics()
        if metrics:
            metrics.record_circuit_transition(old_state.value, new_state.value)

        sentry = get_sentry()
        if sentry:
            sentry.add_breadcrumb(
                "circuit",
                f"{self.name}: {old_state.value} -> {new_state.value}",
                {"failure_count": self._failure_count},
                level="warning" if new_state == CircuitState.OPEN else "info",
            )

    def status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        with self._lock:
            retry_after = (
                self._time_until_half_open() if self._state == CircuitState.OPEN else None
            )
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "failure_threshold": self.config.failure_threshold,
                "retry_after_seconds": retry_after,
            }
