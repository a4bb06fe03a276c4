"""Aggregate summaries over stored metric records."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable

from metrics_gateway.resilience.errors import MetricsNotFoundError
from metrics_gateway.store.metrics import MetricRecord

SUMMARY_KEY_PREFIX = "summary"


@dataclass(frozen=True)
class MetricSummary:
    """Count and mean of the records matching one metric type."""

    type: str
    count: int
    average_value: float

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def summarize(records: Iterable[MetricRecord], metric_type: str) -> MetricSummary:
    """Summarize the records whose type equals metric_type.

    Raises:
        MetricsNotFoundError: If no record matches
    """
    values = [record.value for record in records if record.type == metric_type]
    if not values:
        raise MetricsNotFoundError(metric_type)
    return MetricSummary(
        type=metric_type,
        count=len(values),
        average_value=float(sum(values)) / len(values),
    )


def summary_cache_key(metric_type: str) -> str:
    return f"{SUMMARY_KEY_PREFIX}:{metric_type}"
