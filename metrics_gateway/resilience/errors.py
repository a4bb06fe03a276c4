"""Resilience layer exceptions."""

from __future__ import annotations


class ServiceError(Exception):
    """Base exception for service layer errors."""


class StoreUnavailableError(ServiceError):
    """The shared key-value store failed or timed out."""


class RateLimiterUnavailableError(StoreUnavailableError):
    """The rate limiter could not reach its counter store."""


class RateLimitedError(ServiceError):
    """Rate limit exceeded for a client."""

    def __init__(self, client_key: str, retry_after_seconds: int) -> None:
        self.client_key = client_key
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit exceeded for '{client_key}', retry after {retry_after_seconds}s"
        )


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, call short-circuited."""

    def __init__(self, name: str, state: str, retry_after_seconds: float) -> None:
        self.name = name
        self.state = state
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Circuit breaker '{name}' is {state}, retry after {retry_after_seconds:.1f}s"
        )


class ExternalOperationFailure(ServiceError):
    """The wrapped external call failed."""


class ExternalTimeoutError(ExternalOperationFailure):
    """The wrapped external call did not finish in time."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"External call timed out after {timeout}s")


class ComputeError(ServiceError):
    """A summary could not be computed."""


class MetricsNotFoundError(ServiceError):
    """No stored metrics matched the requested selector."""

    def __init__(self, metric_type: str) -> None:
        self.metric_type = metric_type
        super().__init__(f"No metrics found for type '{metric_type}'")
