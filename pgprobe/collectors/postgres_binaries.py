"""Build timestamps of platform helper extensions.

Each helper ships a SQL function returning the unix time it was built at.
Only the functions named in ``BUILD_TIMESTAMP_FUNCTIONS`` are called, and
only when they exist on the server.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pgprobe.collectors.base import Collector
from pgprobe.exceptions import NoDataError, QueryFailedError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection

    from pgprobe.db.instance import Instance
    from pgprobe.monitoring.metrics import MetricsSink

# Metric name segment -> build timestamp function.
BUILD_TIMESTAMP_FUNCTIONS = {
    "pg_pscale_utils": "pg_pscale_utils_build_unix_timestamp",
    "pg_readonly": "pg_readonly_build_unix_timestamp",
    "pginsights": "pginsights_build_unix_timestamp",
}

FUNCTION_EXISTS_QUERY = "SELECT EXISTS (SELECT 1 FROM pg_catalog.pg_proc WHERE proname = :proname)"


class PostgresBinariesCollector(Collector):
    """Emits ``postgres_binaries_<name>_build_timestamp_seconds`` per helper present.

    Raises ``NoDataError`` when none of the helpers is installed.
    """

    subsystem = "postgres_binaries"

    async def update(self, instance: Instance, sink: MetricsSink) -> None:
        connection = instance.connection
        emitted = 0
        for name, function in BUILD_TIMESTAMP_FUNCTIONS.items():
            timestamp = await self._build_timestamp(connection, function)
            if timestamp is None:
                continue
            sink.gauge(self.metric_name(f"{name}_build_timestamp_seconds"), float(timestamp))
            emitted += 1

        if not emitted:
            msg = "no helper build timestamp functions installed"
            raise NoDataError(msg)

    async def _build_timestamp(self, connection: AsyncConnection, function: str) -> int | None:
        try:
            result = await connection.execute(text(FUNCTION_EXISTS_QUERY), {"proname": function})
            if not result.scalar_one():
                return None
            result = await connection.execute(text(f"SELECT {function}()"))
            return result.scalar_one()
        except SQLAlchemyError as exc:
            msg = f"failed to read build timestamp from {function}(): {exc}"
            raise QueryFailedError(msg) from exc
