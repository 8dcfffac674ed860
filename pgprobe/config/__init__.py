"""Configuration module for pgprobe."""

from pgprobe.config.settings import (
    CollectorConfig,
    DatabaseConfig,
    ExporterConfig,
    MonitoringConfig,
    load_config,
    split_csv,
)

__all__ = [
    "CollectorConfig",
    "DatabaseConfig",
    "ExporterConfig",
    "MonitoringConfig",
    "load_config",
    "split_csv",
]
