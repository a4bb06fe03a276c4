"""Append-only in-process storage for ingested metric samples."""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from typing import Protocol


@dataclass(frozen=True)
class MetricRecord:
    """A single ingested metric sample."""

    timestamp: str
    value: float
    type: str

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


class MetricStore(Protocol):
    """Protocol for metric storage implementations."""

    def append(self, record: MetricRecord) -> None:
        """Append a record. Records are never mutated or removed."""
        ...

    def snapshot(self) -> tuple[MetricRecord, ...]:
        """Return every record appended so far, in insertion order."""
        ...

    def select(self, metric_type: str) -> list[MetricRecord]:
        """Return records whose type equals metric_type, in insertion order."""
        ...


class InMemoryMetricStore:
    """Lock-protected append-only sequence of metric records.

    Readers get an immutable snapshot taken under the lock, so a concurrent
    append is either fully visible or not visible at all.
    """

    def __init__(self) -> None:
        self._records: list[MetricRecord] = []
        self._lock = threading.Lock()

    def append(self, record: MetricRecord) -> None:
        with self._lock:
            self._records.append(record)

    def snapshot(self) -> tuple[MetricRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def select(self, metric_type: str) -> list[MetricRecord]:
        return [record for record in self.snapshot() if record.type == metric_type]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
