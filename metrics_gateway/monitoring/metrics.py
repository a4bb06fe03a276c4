"""Prometheus metrics for the gateway's resilience layer.

Counts what the rate limiter, circuit breaker and summary cache decide, so an
operator can see rejections, short-circuits and cache efficiency without
reading logs.

Example:
    >>> from metrics_gateway.monitoring.metrics import MetricsConfig, init_metrics
    >>>
    >>> metrics = init_metrics(MetricsConfig(port=9090))
    >>> metrics.start_server()
    >>> metrics.record_rate_limit_decision(allowed=False)
    >>> metrics.record_cache_lookup(hit=True)
"""

import logging
import threading
from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Counter, start_http_server

logger = logging.getLogger(__name__)

# Module-level singleton
_metrics: "MetricsService | None" = None


@dataclass(frozen=True)
class MetricsConfig:
    """Configuration for metrics service.

    Attributes:
        enabled: Whether metrics collection is enabled
        port: HTTP server port for Prometheus scraping
        prefix: Metric name prefix
    """

    enabled: bool = True
    port: int = 9090
    prefix: str = "metrics_gateway"


class MetricsService:
    """Prometheus metrics service for the gateway.

    Each service owns its own ``CollectorRegistry`` so several instances can
    coexist in one process (tests create many).
    """

    def __init__(self, config: MetricsConfig | None = None) -> None:
        """Initialize metrics service.

        Args:
            config: Metrics configuration (uses defaults if not provided)
        """
        self.config = config or MetricsConfig()
        self.registry = CollectorRegistry()
        self._server_started = False
        self._lock = threading.Lock()

        self._rate_limit_decisions: Counter | None = None
        self._circuit_transitions: Counter | None = None
        self._circuit_short_circuits: Counter | None = None
        self._cache_lookups: Counter | None = None
        self._metrics_ingested: Counter | None = None

        if self.config.enabled:
            self._initialize_metrics()

    def _initialize_metrics(self) -> None:
        """Initialize Prometheus metrics objects."""
        prefix = self.config.prefix

        self._rate_limit_decisions = Counter(
            f"{prefix}_rate_limit_decisions_total",
            "Rate limiter admission decisions",
            ["outcome"],
            registry=self.registry,
        )

        # Circuit breaker
        self._circuit_transitions = Counter(
            f"{prefix}_circuit_transitions_total",
            "Circuit breaker phase transitions",
            ["from_state", "to_state"],
            registry=self.registry,
        )
        self._circuit_short_circuits = Counter(
            f"{prefix}_circuit_short_circuits_total",
            "Calls rejected without attempting the external operation",
            registry=self.registry,
        )

        self._cache_lookups = Counter(
            f"{prefix}_summary_cache_lookups_total",
            "Summary cache lookups by result",
            ["result"],
            registry=self.registry,
        )

        self._metrics_ingested = Counter(
            f"{prefix}_metrics_ingested_total",
            "Metric samples accepted for storage",
            ["type"],
            registry=self.registry,
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self) -> bool:
        """Start the Prometheus HTTP server.

        Returns:
            True if server started successfully, False otherwise
        """
        if not self.config.enabled:
            logger.info("Metrics disabled, server not started")
            return False

        with self._lock:
            if self._server_started:
                logger.warning("Metrics server already started")
                return True

            try:
                start_http_server(self.config.port, registry=self.registry)
                self._server_started = True
                logger.info("Prometheus metrics server started on port %s", self.config.port)
                return True
            except OSError as e:
                logger.error("Failed to start metrics server: %s", e)
                return False

    @property
    def is_enabled(self) -> bool:
        """Check if metrics collection is enabled."""
        return self.config.enabled

    # --- Rate limiting ---

    def record_rate_limit_decision(self, allowed: bool) -> None:
        if not self.config.enabled or self._rate_limit_decisions is None:
            return
        self._rate_limit_decisions.labels(outcome="allowed" if allowed else "rejected").inc()

    # --- Circuit breaker ---

    def record_circuit_transition(self, from_state: str, to_state: str) -> None:
        """Record a circuit breaker phase change.

        Args:
            from_state: Phase before the transition ("CLOSED", "OPEN", "HALF_OPEN")
            to_state: Phase after the transition
        """
        if not self.config.enabled or self._circuit_transitions is None:
            return
        self._circuit_transitions.labels(from_state=from_state, to_state=to_state).inc()

    def record_short_circuit(self) -> None:
        if not self.config.enabled or self._circuit_short_circuits is None:
            return
        self._circuit_short_circuits.inc()

    # --- Summary cache ---

    def record_cache_lookup(self, hit: bool) -> None:
        if not self.config.enabled or self._cache_lookups is None:
            return
        self._cache_lookups.labels(result="hit" if hit else "miss").inc()

    # --- Ingestion ---

    def record_metric_ingested(self, metric_type: str) -> None:
        if not self.config.enabled or self._metrics_ingested is None:
            return
        self._metrics_ingested.labels(type=metric_type).inc()


def init_metrics(config: MetricsConfig | None = None) -> MetricsService:
    """Initialize the global metrics service.

    Args:
        config: Metrics configuration

    Returns:
        Initialized MetricsService
    """
    global _metrics
    _metrics = MetricsService(config)
    return _metrics


def get_metrics() -> MetricsService | None:
    """Get the global metrics service instance.

    Returns:
        MetricsService if initialized, None otherwise
    """
    return _metrics
