"""Audit of roles holding superuser privileges they are not expected to have."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pgprobe.collectors.base import Collector
from pgprobe.db.version import PG16
from pgprobe.exceptions import QueryFailedError

if TYPE_CHECKING:
    from pgprobe.db.instance import Instance
    from pgprobe.monitoring.metrics import MetricsSink

# Roles that are expected to have superuser privileges.
EXPECTED_SUPERUSERS = frozenset({"pscale_admin"})

SUPERUSERS_QUERY = """
    SELECT rolname, 'direct'::pg_catalog.text AS access_type
    FROM pg_catalog.pg_roles WHERE rolsuper
"""

# From 16, membership grants carry set_option; a role that can SET ROLE to a
# superuser (or administer that membership) is effectively one.
SUPERUSERS_QUERY_PG16 = """
    WITH RECURSIVE superuser_chain AS (
        SELECT oid, rolname, 'direct'::pg_catalog.text AS access_type
        FROM pg_catalog.pg_roles WHERE rolsuper
        UNION
        SELECT r.oid, r.rolname, 'indirect'::pg_catalog.text AS access_type
        FROM pg_catalog.pg_roles r
        JOIN pg_catalog.pg_auth_members m ON m.member OPERATOR(pg_catalog.=) r.oid
        JOIN superuser_chain s ON m.roleid OPERATOR(pg_catalog.=) s.oid
        WHERE NOT r.rolsuper
            AND (m.set_option OPERATOR(pg_catalog.=) true
                 OR m.admin_option OPERATOR(pg_catalog.=) true)
    )
    SELECT rolname, access_type FROM superuser_chain
"""


class UnexpectedSuperusersCollector(Collector):
    """Reports superuser roles outside ``EXPECTED_SUPERUSERS``.

    Emits one ``unexpected_superusers_role{rolname,access_type}`` sample per
    role, then ``unexpected_superusers_count``.
    """

    subsystem = "unexpected_superusers"

    async def update(self, instance: Instance, sink: MetricsSink) -> None:
        query = SUPERUSERS_QUERY_PG16 if instance.version.gte(PG16) else SUPERUSERS_QUERY
        try:
            result = await instance.connection.execute(text(query))
            rows = result.all()
        except SQLAlchemyError as exc:
            msg = f"failed to query superuser roles: {exc}"
            raise QueryFailedError(msg) from exc

        count = 0
        for rolname, access_type in rows:
            if rolname is None or rolname in EXPECTED_SUPERUSERS:
                continue
            count += 1
            sink.gauge(
                self.metric_name("role"),
                1.0,
                {"rolname": rolname, "access_type": access_type or "direct"},
            )

        sink.gauge(self.metric_name("count"), float(count))
