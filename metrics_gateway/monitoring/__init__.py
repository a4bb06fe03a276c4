"""Monitoring module for Prometheus instrumentation and Sentry error tracking."""

from metrics_gateway.monitoring.metrics import (
    MetricsConfig,
    MetricsService,
    get_metrics,
    init_metrics,
)
from metrics_gateway.monitoring.sentry_service import (
    SentryConfig,
    SentryService,
    get_sentry,
    init_sentry,
)

__all__ = [
    "MetricsConfig",
    "MetricsService",
    "SentryConfig",
    "SentryService",
    "get_metrics",
    "get_sentry",
    "init_metrics",
    "init_sentry",
]
