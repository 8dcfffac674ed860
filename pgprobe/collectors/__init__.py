"""Collectors, their registry, and the scrape orchestrator."""

from pgprobe.collectors.base import Collector, CollectorOptions
from pgprobe.collectors.extension import ExtensionCollector, select_databases
from pgprobe.collectors.long_running_transactions import LongRunningTransactionsCollector
from pgprobe.collectors.postgres_binaries import PostgresBinariesCollector
from pgprobe.collectors.registry import (
    CollectorDescriptor,
    CollectorRegistry,
    default_registry,
)
from pgprobe.collectors.scrape import CollectorOutcome, ScrapeOrchestrator, ScrapeResult
from pgprobe.collectors.synchronized_standby_slots import SynchronizedStandbySlotsCollector
from pgprobe.collectors.unexpected_superusers import UnexpectedSuperusersCollector

__all__ = [
    "Collector",
    "CollectorDescriptor",
    "CollectorOptions",
    "CollectorOutcome",
    "CollectorRegistry",
    "ExtensionCollector",
    "LongRunningTransactionsCollector",
    "PostgresBinariesCollector",
    "ScrapeOrchestrator",
    "ScrapeResult",
    "SynchronizedStandbySlotsCollector",
    "UnexpectedSuperusersCollector",
    "default_registry",
    "select_databases",
]
