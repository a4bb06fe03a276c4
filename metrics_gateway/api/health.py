from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from metrics_gateway.api.deps import get_circuit_breaker, get_kv_store
from metrics_gateway.api.schemas import HealthResponse, ReadinessResponse
from metrics_gateway.resilience.circuit_breaker import CircuitBreaker
from metrics_gateway.resilience.errors import StoreUnavailableError
from metrics_gateway.store.kv import KeyValueStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health() -> dict[str, str]:
    """Return a liveness payload."""
    return {"status": "OK"}


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "Shared store unreachable"}},
)
def readiness(
    store: KeyValueStore = Depends(get_kv_store),
    breaker: CircuitBreaker = Depends(get_circuit_breaker),
) -> Any:
    """Verify the shared store answers and report the external circuit."""
    try:
        store_ok = store.ping()
    except StoreUnavailableError as e:
        logger.warning("Readiness check failed: %s", e)
        store_ok = False

    if not store_ok:
        return JSONResponse(
            status_code=503,
            content={"status": "UNAVAILABLE", "store": "UNAVAILABLE", "circuit": breaker.status()},
        )
    return {"status": "OK", "store": "OK", "circuit": breaker.status()}
