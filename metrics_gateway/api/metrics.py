from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from metrics_gateway.api.deps import get_metric_store, get_rate_limiter, get_summary_cache
from metrics_gateway.api.errors import error_detail
from metrics_gateway.api.schemas import MessageResponse, MetricIn, SummaryResponse
from metrics_gateway.monitoring.metrics import get_metrics
from metrics_gateway.resilience.cache_aside import CacheAsideComputer
from metrics_gateway.resilience.errors import (
    ComputeError,
    MetricsNotFoundError,
    RateLimitedError,
    RateLimiterUnavailableError,
    StoreUnavailableError,
)
from metrics_gateway.resilience.rate_limit import FixedWindowRateLimiter, get_client_ip
from metrics_gateway.store.metrics import MetricRecord, MetricStore
from metrics_gateway.summary import summarize, summary_cache_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/metrics")


def _admit(request: Request, response: Response, limiter: FixedWindowRateLimiter) -> None:
    """Raise 429 or 500 unless the caller is within its rate limit."""
    client = get_client_ip(request)
    try:
        decision = limiter.enforce(client)
    except RateLimiterUnavailableError:
        raise HTTPException(
            status_code=500,
            detail=error_detail("RATE_LIMITER_UNAVAILABLE", "Rate limiter unavailable."),
        )
    except RateLimitedError as e:
        raise HTTPException(
            status_code=429,
            detail=error_detail(
                "RATE_LIMITED", "Rate limit exceeded.", retry_after_seconds=e.retry_after_seconds
            ),
            headers={
                "Retry-After": str(e.retry_after_seconds),
                "X-RateLimit-Limit": str(limiter.config.max_requests),
                "X-RateLimit-Remaining": "0",
            },
        )
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)


@router.post("", status_code=201, response_model=MessageResponse)
def ingest_metric(
    payload: MetricIn,
    request: Request,
    response: Response,
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
    store: MetricStore = Depends(get_metric_store),
) -> dict[str, str]:
    """Store a metric sample."""
    # Body is validated before admission so malformed requests never count
    _admit(request, response, limiter)

    store.append(MetricRecord(timestamp=payload.timestamp, value=payload.value, type=payload.type))
    metrics = get_metrics()
    if metrics:
        metrics.record_metric_ingested(payload.type)
    return {"message": "Metric stored successfully"}


@router.get("/summary", response_model=SummaryResponse)
def metric_summary(
    metric_type: str | None = Query(None, alias="type"),
    store: MetricStore = Depends(get_metric_store),
    cache: CacheAsideComputer = Depends(get_summary_cache),
) -> dict[str, Any]:
    """Return count and average value for one metric type."""
    if not metric_type:
        raise HTTPException(
            status_code=400,
            detail=error_detail("MISSING_TYPE", "Query parameter 'type' is required."),
        )

    def compute() -> dict[str, object]:
        return summarize(store.select(metric_type), metric_type).to_dict()

    try:
        return cache.get_or_compute(summary_cache_key(metric_type), compute)
    except MetricsNotFoundError:
        raise HTTPException(
            status_code=404,
            detail=error_detail("NOT_FOUND", "No metrics found for this type."),
        )
    except (StoreUnavailableError, ComputeError) as e:
        logger.error("Summary for %s unavailable: %s", metric_type, e)
        raise HTTPException(
            status_code=500,
            detail=error_detail("SUMMARY_UNAVAILABLE", "Summary could not be computed."),
        )
