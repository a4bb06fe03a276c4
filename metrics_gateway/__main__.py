"""Main entry point for the metrics gateway."""

import logging

import uvicorn

from metrics_gateway import __version__
from metrics_gateway.api.deps import get_settings
from metrics_gateway.main import app
from metrics_gateway.monitoring.metrics import MetricsConfig, init_metrics
from metrics_gateway.monitoring.sentry_service import SentryConfig, get_sentry, init_sentry

logger = logging.getLogger("metrics_gateway")


def main(run_server: bool = True) -> int:
    """Configure logging, error tracking and metrics, then run the API server."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if settings.sentry_dsn:
        init_sentry(
            SentryConfig(
                dsn=settings.sentry_dsn,
                environment=settings.sentry_environment,
                release=f"metrics-gateway@{__version__}",
                traces_sample_rate=settings.sentry_traces_sample_rate,
            )
        )

    if settings.metrics_enabled:
        metrics = init_metrics(MetricsConfig(port=settings.metrics_port))
        metrics.start_server()
    else:
        init_metrics(MetricsConfig(enabled=False))
        logger.info("Prometheus metrics disabled (set METRICS_ENABLED=true to enable)")

    if run_server:  # pragma: no cover
        logger.info("Server running on port %s", settings.port)
        uvicorn.run(app, host=settings.host, port=settings.port)
        sentry = get_sentry()
        if sentry:
            sentry.flush()

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
