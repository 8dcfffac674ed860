"""Metric samples and the sink collectors write them to.

A sink is an append-only, thread-safe list of samples. Collectors only ever
append; the exposition layer reads a snapshot once the scrape is done.
"""

from __future__ import annotations

import enum
import threading
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


class MetricKind(enum.StrEnum):
    """Type of a metric sample."""

    GAUGE = "gauge"
    COUNTER = "counter"


class MetricSample(BaseModel):
    """A single observation: name, kind, value, and ordered labels."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: MetricKind = MetricKind.GAUGE
    value: float
    labels: dict[str, str] = Field(default_factory=dict)


class MetricsSnapshot(BaseModel):
    """Point-in-time copy of everything a sink has received."""

    timestamp: datetime
    samples: list[MetricSample]

    def by_name(self, name: str) -> list[MetricSample]:
        """Return the samples named ``name``, in emission order."""
        return [s for s in self.samples if s.name == name]


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join non-empty name parts with underscores.

    Args:
        namespace: Exporter-wide prefix, e.g. ``"pg"``.
        subsystem: Collector segment, e.g. ``"extension"``.
        name: Metric-specific suffix, e.g. ``"info"``.

    Returns:
        The fully-qualified metric name, e.g. ``"pg_extension_info"``.
    """
    return "_".join(part for part in (namespace, subsystem, name) if part)


class MetricsSink:
    """Thread-safe, append-only collection of metric samples.

    One sink is passed to every collector of a scrape. Samples keep the
    order in which they were emitted.
    """

    def __init__(self) -> None:
        self._samples: list[MetricSample] = []
        self._lock = threading.Lock()

    def emit(self, sample: MetricSample) -> None:
        """Append a sample."""
        with self._lock:
            self._samples.append(sample)

    def gauge(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Append a gauge sample.

        Args:
            name: Fully-qualified metric name.
            value: The observed value.
            labels: Optional ordered label set.
        """
        self.emit(MetricSample(name=name, kind=MetricKind.GAUGE, value=value, labels=labels or {}))

    def counter(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Append a counter sample.

        Args:
            name: Fully-qualified metric name.
            value: The current counter total.
            labels: Optional ordered label set.
        """
        self.emit(MetricSample(name=name, kind=MetricKind.COUNTER, value=value, labels=labels or {}))

    def samples(self) -> list[MetricSample]:
        """Return a copy of the samples emitted so far."""
        with self._lock:
            return list(self._samples)

    def snapshot(self) -> MetricsSnapshot:
        """Create a point-in-time snapshot of all samples."""
        return MetricsSnapshot(timestamp=datetime.now(UTC), samples=self.samples())

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)
