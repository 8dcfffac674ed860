"""Pydantic settings models for pgprobe configuration.

All configuration is loaded from environment variables with the PGPROBE_ prefix.
Each sub-config uses its own ENV prefix (e.g., PGPROBE_DB_, PGPROBE_COLLECTOR_).
Values in a .env file in the working directory are read as well.

List-valued settings are plain comma-separated strings, matching how they are
passed on a command line. Use the accompanying properties to get the parsed list.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pgprobe.config.defaults import (
    DEFAULT_EXTENSION_MAX_DATABASES,
    DEFAULT_LOG_FORMAT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_NAMESPACE,
    DEFAULT_SCRAPE_TIMEOUT_SECONDS,
    DEFAULT_STATEMENT_TIMEOUT_SECONDS,
)


def _env_config(env_prefix: str) -> SettingsConfigDict:
    """Settings behaviour shared by every pgprobe config section.

    Args:
        env_prefix: Prefix such as ``"PGPROBE_DB_"`` for this section.

    Returns:
        SettingsConfigDict reading the environment and an optional .env file.
    """
    return SettingsConfigDict(
        env_prefix=env_prefix,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def split_csv(value: str) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty items.

    Args:
        value: Raw setting, e.g. ``"app, analytics,,"``.

    Returns:
        The items in their original order, e.g. ``["app", "analytics"]``.
    """
    return [item.strip() for item in value.split(",") if item.strip()]


class DatabaseConfig(BaseSettings):
    """Connection to the monitored PostgreSQL server."""

    model_config = _env_config("PGPROBE_DB_")

    dsn: str = ""
    statement_timeout_seconds: float = DEFAULT_STATEMENT_TIMEOUT_SECONDS
    exclude_databases: str = ""

    @field_validator("statement_timeout_seconds")
    @classmethod
    def validate_statement_timeout(cls, v: float) -> float:
        """Ensure the timeout is not negative (0 disables it)."""
        if v < 0:
            msg = f"statement_timeout_seconds must be >= 0, got {v}"
            raise ValueError(msg)
        return v

    @property
    def excluded_databases(self) -> list[str]:
        """Databases no collector should ever connect to."""
        return split_csv(self.exclude_databases)


class CollectorConfig(BaseSettings):
    """Collector selection and per-collector tuning."""

    model_config = _env_config("PGPROBE_COLLECTOR_")

    enable: str = ""
    disable: str = ""
    extension_max_databases: int = DEFAULT_EXTENSION_MAX_DATABASES
    extension_include_databases: str = ""

    @field_validator("extension_max_databases")
    @classmethod
    def validate_max_databases(cls, v: int) -> int:
        """Ensure the scan budget is not negative (0 means unlimited)."""
        if v < 0:
            msg = f"extension_max_databases must be >= 0, got {v}"
            raise ValueError(msg)
        return v

    @property
    def enabled_collectors(self) -> list[str]:
        """Collectors forced on regardless of their default."""
        return split_csv(self.enable)

    @property
    def disabled_collectors(self) -> list[str]:
        """Collectors forced off regardless of their default."""
        return split_csv(self.disable)

    @property
    def extension_priority_databases(self) -> list[str]:
        """Databases the extension collector scans on every scrape."""
        return split_csv(self.extension_include_databases)


class MonitoringConfig(BaseSettings):
    """Metric naming, logging, and scrape deadline configuration."""

    model_config = _env_config("PGPROBE_MONITORING_")

    namespace: str = DEFAULT_NAMESPACE
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = (
        DEFAULT_LOG_LEVEL  # type: ignore[assignment]
    )
    log_format: Literal["json", "text"] = (
        DEFAULT_LOG_FORMAT  # type: ignore[assignment]
    )
    log_file: str | None = None
    scrape_timeout_seconds: float = DEFAULT_SCRAPE_TIMEOUT_SECONDS

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Ensure the namespace is a usable metric name prefix."""
        if not v or not v.replace("_", "").isalnum():
            msg = f"namespace must be non-empty and alphanumeric, got {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("scrape_timeout_seconds")
    @classmethod
    def validate_scrape_timeout(cls, v: float) -> float:
        """Ensure the scrape deadline is positive."""
        if v <= 0:
            msg = f"scrape_timeout_seconds must be > 0, got {v}"
            raise ValueError(msg)
        return v


class ExporterConfig(BaseSettings):
    """Top-level pgprobe configuration.

    Sections load their own prefixed variables, so an override such as
    ``PGPROBE_COLLECTOR_DISABLE`` only touches the collector section.
    """

    model_config = _env_config("PGPROBE_")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)


def load_config() -> ExporterConfig:
    """Load and validate the full pgprobe configuration from environment.

    Returns:
        Fully validated ExporterConfig instance.

    Raises:
        pydantic.ValidationError: If any configuration value is invalid.
    """
    return ExporterConfig()
