"""Shared test fixtures for pgprobe test suite."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from pgprobe.collectors.base import CollectorOptions
from pgprobe.config.settings import (
    CollectorConfig,
    DatabaseConfig,
    ExporterConfig,
    MonitoringConfig,
)
from pgprobe.monitoring.metrics import MetricsSink
from tests.fixtures.mock_db import TEST_DSN, FakeEngineFactory

# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_config(monkeypatch: pytest.MonkeyPatch) -> ExporterConfig:
    """Provide an ExporterConfig with test-specific values."""
    monkeypatch.setenv("PGPROBE_DB_DSN", TEST_DSN)
    monkeypatch.setenv("PGPROBE_DB_EXCLUDE_DATABASES", "rdsadmin")
    monkeypatch.setenv("PGPROBE_COLLECTOR_EXTENSION_INCLUDE_DATABASES", "app, analytics")
    return ExporterConfig(
        database=DatabaseConfig(),
        collector=CollectorConfig(),
        monitoring=MonitoringConfig(),
    )


@pytest.fixture()
def options() -> CollectorOptions:
    """Provide collector options with no exclusions and no scan budget."""
    return CollectorOptions(namespace="pg", extension_max_databases=0)


# ---------------------------------------------------------------------------
# Metrics fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sink() -> MetricsSink:
    """Provide an empty metric sink."""
    return MetricsSink()


# ---------------------------------------------------------------------------
# Mock database engines
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_engines(monkeypatch: pytest.MonkeyPatch) -> Callable[[dict[str | None, Any]], FakeEngineFactory]:
    """Replace engine creation with a FakeEngineFactory built from a target map."""

    def install(targets: dict[str | None, Any]) -> FakeEngineFactory:
        factory = FakeEngineFactory(targets)
        monkeypatch.setattr("pgprobe.db.instance.create_single_connection_engine", factory)
        return factory

    return install
