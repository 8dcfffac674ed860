"""Registry of available collectors.

The registry is an explicit table filled once at startup and frozen before
any scrape runs, so it can be shared without locking. ``default_registry()``
returns the table of built-in collectors.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from pgprobe.collectors.base import Collector, CollectorOptions
from pgprobe.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CollectorFactory = Callable[[CollectorOptions], Collector]

DEFAULT_ENABLED = True
DEFAULT_DISABLED = False


@dataclass(frozen=True)
class CollectorDescriptor:
    """Registration entry for one collector."""

    name: str
    default_enabled: bool
    factory: CollectorFactory


class CollectorRegistry:
    """Append-only table of collector descriptors, keyed by name.

    Entries keep registration order, which is also the order collectors
    run in during a scrape.
    """

    def __init__(self) -> None:
        self._descriptors: dict[str, CollectorDescriptor] = {}
        self._frozen = False

    def register(self, name: str, default_enabled: bool, factory: CollectorFactory) -> None:
        """Add a collector to the table.

        Args:
            name: Collector name, also its metric subsystem.
            default_enabled: Whether the collector runs without an override.
            factory: Callable building the collector from shared options.

        Raises:
            ConfigurationError: If the registry is frozen or ``name`` is taken.
        """
        if self._frozen:
            msg = f"cannot register collector {name!r}: registry is frozen"
            raise ConfigurationError(msg)
        if name in self._descriptors:
            msg = f"collector {name!r} is already registered"
            raise ConfigurationError(msg)
        self._descriptors[name] = CollectorDescriptor(name, default_enabled, factory)
        logger.debug("Collector registered: %s", name)

    def freeze(self) -> CollectorRegistry:
        """Reject further registrations. Returns self for chaining."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> list[str]:
        return list(self._descriptors)

    def get(self, name: str) -> CollectorDescriptor:
        """Look up a descriptor by name.

        Raises:
            KeyError: If no collector is registered under ``name``.
        """
        return self._descriptors[name]

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def enabled_names(
        self,
        enable: Iterable[str] = (),
        disable: Iterable[str] = (),
    ) -> list[str]:
        """Resolve which collectors run, applying overrides to the defaults.

        Args:
            enable: Names forced on.
            disable: Names forced off; wins over ``enable``.

        Returns:
            Enabled collector names in registration order.

        Raises:
            ConfigurationError: If an override names an unknown collector.
        """
        enable_set, disable_set = set(enable), set(disable)
        unknown = sorted((enable_set | disable_set) - self._descriptors.keys())
        if unknown:
            msg = f"unknown collector(s): {', '.join(unknown)}"
            raise ConfigurationError(msg)

        return [
            name
            for name, descriptor in self._descriptors.items()
            if name not in disable_set and (descriptor.default_enabled or name in enable_set)
        ]

    def build(
        self,
        options: CollectorOptions,
        enable: Iterable[str] = (),
        disable: Iterable[str] = (),
    ) -> dict[str, Collector]:
        """Instantiate every enabled collector.

        Args:
            options: Shared options passed to each factory.
            enable: Names forced on.
            disable: Names forced off.

        Returns:
            Mapping of collector name to instance, in registration order.
        """
        collectors = {
            name: self._descriptors[name].factory(options)
            for name in self.enabled_names(enable, disable)
        }
        logger.info(
            "Collectors enabled",
            extra={"extra": {"collectors": list(collectors)}},
        )
        return collectors


def default_registry() -> CollectorRegistry:
    """Build the frozen registry of built-in collectors."""
    from pgprobe.collectors.extension import ExtensionCollector
    from pgprobe.collectors.long_running_transactions import LongRunningTransactionsCollector
    from pgprobe.collectors.postgres_binaries import PostgresBinariesCollector
    from pgprobe.collectors.synchronized_standby_slots import SynchronizedStandbySlotsCollector
    from pgprobe.collectors.unexpected_superusers import UnexpectedSuperusersCollector

    registry = CollectorRegistry()
    registry.register(ExtensionCollector.subsystem, DEFAULT_ENABLED, ExtensionCollector)
    registry.register(
        LongRunningTransactionsCollector.subsystem,
        DEFAULT_DISABLED,
        LongRunningTransactionsCollector,
    )
    registry.register(PostgresBinariesCollector.subsystem, DEFAULT_DISABLED, PostgresBinariesCollector)
    registry.register(
        SynchronizedStandbySlotsCollector.subsystem,
        DEFAULT_ENABLED,
        SynchronizedStandbySlotsCollector,
    )
    registry.register(
        UnexpectedSuperusersCollector.subsystem,
        DEFAULT_ENABLED,
        UnexpectedSuperusersCollector,
    )
    return registry.freeze()
