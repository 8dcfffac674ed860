"""Installed-extension discovery across the databases of a server.

Extensions live per database, so this collector connects to each database
it scans. Servers can host an unbounded number of databases; a scan budget
caps the work per scrape, and a priority list names databases scanned every
time. The rest of the budget goes to a random sample so that, over many
scrapes, every database is eventually seen.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pgprobe.collectors.base import Collector, CollectorOptions
from pgprobe.exceptions import PgProbeError, QueryFailedError, ScanFailedError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection

    from pgprobe.db.instance import Instance
    from pgprobe.monitoring.metrics import MetricsSink

logger = logging.getLogger(__name__)

DATABASE_LIST_QUERY = """
    SELECT datname FROM pg_catalog.pg_database
    WHERE datallowconn AND NOT datistemplate
    ORDER BY datname
"""

EXTENSION_QUERY = "SELECT extname, extversion FROM pg_catalog.pg_extension"


def select_databases(
    eligible: Sequence[str],
    priority: Sequence[str],
    max_scan: int,
    rng: random.Random | None = None,
) -> list[str]:
    """Choose which databases to scan this scrape.

    Priority databases present in ``eligible`` come first, in ``priority``
    order. The remaining budget is filled with a random sample of the other
    eligible databases. Priority databases are never dropped, so the result
    exceeds ``max_scan`` when the priority list alone does.

    Args:
        eligible: Candidate databases in discovery order.
        priority: Databases to always include if eligible.
        max_scan: Scan budget; 0 or less scans everything.
        rng: Randomness source for the sample. Defaults to the ``random`` module.

    Returns:
        The ordered list of databases to scan.
    """
    if max_scan <= 0:
        return list(eligible)

    eligible_set = set(eligible)
    selected: list[str] = []
    for name in priority:
        if name in eligible_set and name not in selected:
            selected.append(name)

    chosen = set(selected)
    others = [name for name in eligible if name not in chosen]
    (rng or random).shuffle(others)

    remaining = max(0, max_scan - len(selected))
    return selected + others[:remaining]


class ExtensionCollector(Collector):
    """Reports installed extensions across a bounded set of databases.

    Emits ``extension_databases_discovered`` (eligible databases),
    ``extension_databases_scanned`` (databases chosen for this scrape) and one
    ``extension_info`` sample per extension name, sorted by name. When an
    extension is installed in several scanned databases, the last one
    scanned supplies the ``datname`` and ``extversion`` labels.

    Args:
        options: Shared collector configuration.
        rng: Randomness source for database sampling.
    """

    subsystem = "extension"

    def __init__(self, options: CollectorOptions, rng: random.Random | None = None) -> None:
        super().__init__(options)
        self._rng = rng

    async def update(self, instance: Instance, sink: MetricsSink) -> None:
        databases = await self.get_databases(instance.connection)

        excluded = set(self._options.exclude_databases)
        eligible: list[str] = []
        for datname in databases:
            if datname in excluded:
                logger.debug("Skipping excluded database %s", datname)
                continue
            eligible.append(datname)

        sink.gauge(self.metric_name("databases_discovered"), float(len(eligible)))
        if not eligible:
            logger.debug("No databases to query for extensions")
            sink.gauge(self.metric_name("databases_scanned"), 0.0)
            return

        targets = select_databases(
            eligible,
            self._options.extension_priority_databases,
            self._options.extension_max_databases,
            self._rng,
        )
        sink.gauge(self.metric_name("databases_scanned"), float(len(targets)))

        extensions: dict[str, tuple[str, str]] = {}
        for datname in targets:
            try:
                rows = await self.get_extensions(instance, datname)
            except PgProbeError as exc:
                logger.warning(
                    "Failed to collect extensions for database %s",
                    datname,
                    extra={"extra": {"datname": datname, "error": str(exc)}},
                )
                continue
            for extname, extversion in rows:
                extensions[extname] = (datname, extversion)

        for extname in sorted(extensions):
            datname, extversion = extensions[extname]
            sink.gauge(
                self.metric_name("info"),
                1.0,
                {"datname": datname, "extname": extname, "extversion": extversion},
            )

    async def get_databases(self, connection: AsyncConnection) -> list[str]:
        """List connectable, non-template databases.

        Raises:
            ScanFailedError: If the catalog query fails.
        """
        try:
            result = await connection.execute(text(DATABASE_LIST_QUERY))
            rows = result.all()
        except SQLAlchemyError as exc:
            msg = f"failed to query database list: {exc}"
            raise ScanFailedError(msg) from exc
        return [row[0] for row in rows if row[0] is not None]

    async def get_extensions(self, instance: Instance, datname: str) -> list[tuple[str, str]]:
        """Connect to ``datname`` and list its extensions.

        Returns:
            ``(extname, extversion)`` pairs; a null version becomes ``""``.

        Raises:
            ConnectionFailedError: If the database cannot be reached.
            QueryFailedError: If the extension query fails.
        """
        async with instance.connect_to_database(datname) as connection:
            try:
                result = await connection.execute(text(EXTENSION_QUERY))
                rows = result.all()
            except SQLAlchemyError as exc:
                msg = f"failed to query extensions in database {datname}: {exc}"
                raise QueryFailedError(msg) from exc
        return [(row[0], row[1] or "") for row in rows if row[0] is not None]
