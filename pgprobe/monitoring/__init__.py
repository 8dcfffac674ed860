"""Monitoring module for pgprobe.

Provides the metric sink collectors emit into and structured logging.
"""

from pgprobe.monitoring.logging import JSONFormatter, RedactingFilter, configure_logging
from pgprobe.monitoring.metrics import (
    MetricKind,
    MetricSample,
    MetricsSink,
    MetricsSnapshot,
    build_fq_name,
)

__all__ = [
    "JSONFormatter",
    "MetricKind",
    "MetricSample",
    "MetricsSink",
    "MetricsSnapshot",
    "RedactingFilter",
    "build_fq_name",
    "configure_logging",
]
