"""Request and response schemas for the HTTP API."""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, Field, StrictFloat, StrictInt, StrictStr, field_validator


class MetricIn(BaseModel):
    """A metric sample submitted for ingestion."""

    timestamp: StrictStr = Field(..., min_length=1, description="Opaque sample timestamp")
    value: StrictInt | StrictFloat = Field(..., description="Numeric sample value")
    type: StrictStr = Field(..., min_length=1, description="Metric type label, e.g. cpu")

    @field_validator("value")
    def validate_finite(cls, v: float) -> float:
        """Reject NaN, infinities and integers too large for a float."""
        try:
            finite = math.isfinite(v)
        except OverflowError:
            raise ValueError("value out of range") from None
        if not finite:
            raise ValueError("value must be a finite number")
        return v


class MessageResponse(BaseModel):
    message: str


class SummaryResponse(BaseModel):
    type: str
    count: int
    average_value: float


class ExternalDataResponse(BaseModel):
    circuit_state: str
    data: dict[str, Any]


class HealthResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    status: str
    store: str
    circuit: dict[str, Any]
