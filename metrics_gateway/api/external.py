from __future__ import annotations

import math
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from metrics_gateway.api.deps import get_external_client
from metrics_gateway.api.schemas import ExternalDataResponse
from metrics_gateway.external import ExternalDataClient
from metrics_gateway.resilience.errors import CircuitOpenError, ExternalOperationFailure

router = APIRouter(prefix="/api")

FALLBACK_MESSAGE = "External service unavailable. Please try again later."


def _fallback(
    client: ExternalDataClient, code: str, retry_after: float | None = None
) -> JSONResponse:
    """Build the 503 fallback payload echoing the breaker phase."""
    content: dict[str, Any] = {
        "circuit_state": client.circuit_state.value,
        "code": code,
        "message": FALLBACK_MESSAGE,
    }
    headers: dict[str, str] = {}
    if retry_after:
        content["retry_after_seconds"] = round(retry_after, 1)
        headers["Retry-After"] = str(math.ceil(retry_after))
    return JSONResponse(status_code=503, content=content, headers=headers)


@router.get(
    "/external-data",
    response_model=ExternalDataResponse,
    responses={503: {"description": "Circuit open or external failure fallback"}},
)
def external_data(
    client: ExternalDataClient = Depends(get_external_client),
) -> Any:
    """Fetch data from the external dependency through the circuit breaker."""
    try:
        data = client.fetch()
    except CircuitOpenError as e:
        return _fallback(client, "CIRCUIT_OPEN", e.retry_after_seconds)
    except ExternalOperationFailure:
        return _fallback(client, "EXTERNAL_FAILURE")
    return {"circuit_state": client.circuit_state.value, "data": data}
