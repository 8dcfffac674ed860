"""Collector contract and the options shared by all collectors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from pgprobe.config.defaults import DEFAULT_EXTENSION_MAX_DATABASES, DEFAULT_NAMESPACE
from pgprobe.monitoring.metrics import build_fq_name

if TYPE_CHECKING:
    from pgprobe.config.settings import ExporterConfig
    from pgprobe.db.instance import Instance
    from pgprobe.monitoring.metrics import MetricsSink


class CollectorOptions(BaseModel):
    """Read-only configuration handed to every collector factory."""

    model_config = ConfigDict(frozen=True)

    namespace: str = DEFAULT_NAMESPACE
    exclude_databases: tuple[str, ...] = ()
    extension_max_databases: int = DEFAULT_EXTENSION_MAX_DATABASES
    extension_priority_databases: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: ExporterConfig) -> CollectorOptions:
        """Derive collector options from the root configuration."""
        return cls(
            namespace=config.monitoring.namespace,
            exclude_databases=tuple(config.database.excluded_databases),
            extension_max_databases=config.collector.extension_max_databases,
            extension_priority_databases=tuple(config.collector.extension_priority_databases),
        )


class Collector(ABC):
    """One independently schedulable unit of metric collection.

    Subclasses set ``subsystem`` and implement ``update``. ``update`` reports
    failure by raising; raising ``NoDataError`` means there was nothing to
    report. Every query must be awaited so that cancelling the scrape
    aborts it.

    Args:
        options: Shared collector configuration.
    """

    subsystem: str

    def __init__(self, options: CollectorOptions) -> None:
        self._options = options

    def metric_name(self, name: str) -> str:
        """Return ``<namespace>_<subsystem>_<name>``."""
        return build_fq_name(self._options.namespace, self.subsystem, name)

    @abstractmethod
    async def update(self, instance: Instance, sink: MetricsSink) -> None:
        """Query ``instance`` and emit samples into ``sink``."""
