"""Per-scrape dispatch of collectors against a shared instance.

A scrape obtains one Instance, runs every enabled collector on it in turn
under a single deadline, and isolates collector failures: a failing
collector is logged and reported as unsuccessful, the others still run.
Only failing to obtain the Instance ends a scrape early.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping

from pydantic import BaseModel

from pgprobe.collectors.base import Collector, CollectorOptions
from pgprobe.collectors.registry import CollectorRegistry, default_registry
from pgprobe.config.defaults import DEFAULT_NAMESPACE, DEFAULT_SCRAPE_TIMEOUT_SECONDS
from pgprobe.config.settings import ExporterConfig
from pgprobe.db.instance import Instance, InstanceFactory, instance_factory_from_template
from pgprobe.exceptions import ConfigurationError, NoDataError, PgProbeError
from pgprobe.monitoring.metrics import MetricsSink, build_fq_name

logger = logging.getLogger(__name__)

DEADLINE_EXCEEDED = "scrape deadline exceeded"


class CollectorOutcome(BaseModel):
    """Result of running one collector during a scrape."""

    name: str
    success: bool
    duration_seconds: float
    error: str | None = None


class ScrapeResult(BaseModel):
    """Summary of one scrape."""

    up: bool
    error: str | None = None
    collectors: list[CollectorOutcome] = []

    @property
    def failed(self) -> list[str]:
        return [c.name for c in self.collectors if not c.success]


class ScrapeOrchestrator:
    """Runs a fixed set of collectors against a fresh Instance per scrape.

    Args:
        instance_factory: Async callable returning a set-up Instance.
        collectors: Collectors to run, keyed by name, in run order.
        namespace: Metric namespace for the exporter's own samples.
        timeout: Deadline in seconds for all collectors of one scrape.
    """

    def __init__(
        self,
        instance_factory: InstanceFactory,
        collectors: Mapping[str, Collector],
        namespace: str = DEFAULT_NAMESPACE,
        timeout: float = DEFAULT_SCRAPE_TIMEOUT_SECONDS,
    ) -> None:
        self._instance_factory = instance_factory
        self._collectors = dict(collectors)
        self._namespace = namespace
        self._timeout = timeout

    @classmethod
    def from_config(
        cls,
        config: ExporterConfig,
        registry: CollectorRegistry | None = None,
    ) -> ScrapeOrchestrator:
        """Wire an orchestrator from the root configuration.

        Args:
            config: Validated exporter configuration.
            registry: Collector table; defaults to the built-in collectors.

        Raises:
            ConfigurationError: If no DSN is configured or an override names
                an unknown collector.
            InvalidDescriptorError: If the DSN cannot be parsed.
        """
        if not config.database.dsn:
            msg = "no connection descriptor configured (set PGPROBE_DB_DSN)"
            raise ConfigurationError(msg)

        template = Instance(config.database.dsn, config.database.statement_timeout_seconds)
        if registry is None:
            registry = default_registry()
        collectors = registry.build(
            CollectorOptions.from_config(config),
            enable=config.collector.enabled_collectors,
            disable=config.collector.disabled_collectors,
        )
        return cls(
            instance_factory_from_template(template),
            collectors,
            namespace=config.monitoring.namespace,
            timeout=config.monitoring.scrape_timeout_seconds,
        )

    @property
    def collector_names(self) -> list[str]:
        return list(self._collectors)

    async def scrape(self, sink: MetricsSink) -> ScrapeResult:
        """Run one scrape, emitting every sample into ``sink``.

        Args:
            sink: Destination for collector and exporter samples.

        Returns:
            ScrapeResult with the instance status and per-collector outcomes.
        """
        up_metric = build_fq_name(self._namespace, "", "up")
        try:
            instance = await self._instance_factory()
        except PgProbeError as exc:
            logger.error(
                "Error opening connection to database",
                extra={"extra": {"error": str(exc)}},
            )
            sink.gauge(up_metric, 0.0)
            return ScrapeResult(up=False, error=str(exc))

        sink.gauge(up_metric, 1.0)
        outcomes: list[CollectorOutcome] = []
        try:
            async with asyncio.timeout(self._timeout):
                for name, collector in self._collectors.items():
                    outcomes.append(await self._run_collector(name, collector, instance, sink))
        except TimeoutError:
            logger.error(
                "Scrape deadline exceeded",
                extra={"extra": {"timeout_seconds": self._timeout}},
            )
            outcomes.extend(self._timed_out(outcomes))
        finally:
            await instance.close()

        for outcome in outcomes:
            labels = {"collector": outcome.name}
            sink.gauge(
                build_fq_name(self._namespace, "scrape", "collector_duration_seconds"),
                outcome.duration_seconds,
                labels,
            )
            sink.gauge(
                build_fq_name(self._namespace, "scrape", "collector_success"),
                1.0 if outcome.success else 0.0,
                labels,
            )
        return ScrapeResult(up=True, collectors=outcomes)

    async def _run_collector(
        self,
        name: str,
        collector: Collector,
        instance: Instance,
        sink: MetricsSink,
    ) -> CollectorOutcome:
        start = time.perf_counter()
        try:
            await collector.update(instance, sink)
        except NoDataError as exc:
            logger.debug("Collector returned no data: %s", name, extra={"extra": {"reason": str(exc)}})
        except Exception as exc:
            duration = time.perf_counter() - start
            logger.error(
                "Collector failed: %s",
                name,
                extra={"extra": {"collector": name, "error": str(exc), "duration_seconds": duration}},
            )
            return CollectorOutcome(name=name, success=False, duration_seconds=duration, error=str(exc))

        duration = time.perf_counter() - start
        logger.debug(
            "Collector succeeded: %s",
            name,
            extra={"extra": {"collector": name, "duration_seconds": duration}},
        )
        return CollectorOutcome(name=name, success=True, duration_seconds=duration)

    def _timed_out(self, finished: list[CollectorOutcome]) -> list[CollectorOutcome]:
        done = {outcome.name for outcome in finished}
        return [
            CollectorOutcome(
                name=name,
                success=False,
                duration_seconds=0.0,
                error=DEADLINE_EXCEEDED,
            )
            for name in self._collectors
            if name not in done
        ]
