"""Histogram of transaction ages."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pgprobe.collectors.base import Collector
from pgprobe.exceptions import QueryFailedError

if TYPE_CHECKING:
    from pgprobe.db.instance import Instance
    from pgprobe.monitoring.metrics import MetricsSink

THRESHOLDS_SECONDS = (60, 300, 600, 1800)

LONG_RUNNING_TRANSACTIONS_QUERY = """
    WITH transaction_ages AS (
        SELECT EXTRACT(EPOCH FROM clock_timestamp() - pg_stat_activity.xact_start) AS age_seconds
        FROM pg_catalog.pg_stat_activity
        WHERE state IS DISTINCT FROM 'idle'
        AND query NOT LIKE 'autovacuum:%'
        AND pg_stat_activity.xact_start IS NOT NULL
    )
    SELECT
        COUNT(*) FILTER (WHERE age_seconds >= 60) AS count_60s,
        COUNT(*) FILTER (WHERE age_seconds >= 300) AS count_300s,
        COUNT(*) FILTER (WHERE age_seconds >= 600) AS count_600s,
        COUNT(*) FILTER (WHERE age_seconds >= 1800) AS count_1800s,
        MAX(age_seconds) AS oldest_timestamp_seconds
    FROM transaction_ages
"""


class LongRunningTransactionsCollector(Collector):
    """Counts active transactions older than each threshold.

    Emits ``long_running_transactions_count{threshold}`` for 60, 300, 600
    and 1800 seconds, and ``long_running_transactions_oldest_timestamp_seconds``
    (0 when no transaction is open).
    """

    subsystem = "long_running_transactions"

    async def update(self, instance: Instance, sink: MetricsSink) -> None:
        try:
            result = await instance.connection.execute(text(LONG_RUNNING_TRANSACTIONS_QUERY))
            row = result.one()
        except SQLAlchemyError as exc:
            msg = f"failed to query transaction ages: {exc}"
            raise QueryFailedError(msg) from exc

        *counts, oldest = row
        for threshold, count in zip(THRESHOLDS_SECONDS, counts, strict=True):
            sink.gauge(self.metric_name("count"), float(count or 0), {"threshold": str(threshold)})

        sink.gauge(
            self.metric_name("oldest_timestamp_seconds"),
            float(oldest) if oldest is not None else 0.0,
        )
