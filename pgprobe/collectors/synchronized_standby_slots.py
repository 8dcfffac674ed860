"""Validity of the ``synchronized_standby_slots`` setting (PostgreSQL 17+)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pgprobe.collectors.base import Collector
from pgprobe.db.version import PG17
from pgprobe.exceptions import QueryFailedError

if TYPE_CHECKING:
    from pgprobe.db.instance import Instance
    from pgprobe.monitoring.metrics import MetricsSink

logger = logging.getLogger(__name__)

SYNCHRONIZED_STANDBY_SLOTS_QUERY = """
    SELECT count(*) AS invalid_count
    FROM unnest(string_to_array(
      (SELECT setting FROM pg_catalog.pg_settings WHERE name = 'synchronized_standby_slots'),
      ','
    )) AS configured(slot_name)
    WHERE trim(configured.slot_name) != ''
      AND NOT EXISTS(
        SELECT 1 FROM pg_catalog.pg_replication_slots s
        WHERE s.slot_name = trim(configured.slot_name)
          AND s.slot_type = 'physical'
      )
"""


class SynchronizedStandbySlotsCollector(Collector):
    """Counts configured standby slots that are not physical replication slots.

    A non-zero ``synchronized_standby_slots_invalid`` means logical
    replication is blocked waiting on a slot that does not exist.
    """

    subsystem = "synchronized_standby_slots"

    async def update(self, instance: Instance, sink: MetricsSink) -> None:
        if instance.version.lt(PG17):
            logger.debug("synchronized_standby_slots requires PostgreSQL 17, skipping")
            return

        try:
            result = await instance.connection.execute(text(SYNCHRONIZED_STANDBY_SLOTS_QUERY))
            invalid_count = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            msg = f"failed to check synchronized_standby_slots: {exc}"
            raise QueryFailedError(msg) from exc

        sink.gauge(self.metric_name("invalid"), float(invalid_count or 0))
