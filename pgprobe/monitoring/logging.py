"""Structured logging setup for pgprobe.

Records go to stdout, and optionally to a rotating file, as JSON lines or
plain text. Driver errors often echo the connection descriptor, so every
handler installed here masks passwords before a record is written.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import Any

from pgprobe.config.settings import MonitoringConfig
from pgprobe.db.descriptor import redact_password

NOISY_LOGGERS = ("asyncpg", "sqlalchemy.engine", "sqlalchemy.pool")

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class RedactingFilter(logging.Filter):
    """Mask descriptor passwords in the message and structured extras."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_password(record.getMessage())
        record.args = None

        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            record.extra = {
                key: redact_password(value) if isinstance(value, str) else value
                for key, value in extra.items()
            }
        return True


class JSONFormatter(logging.Formatter):
    """Render each record as one JSON object per line.

    Args:
        static_fields: Fields stamped on every entry, e.g. the metric
            namespace identifying which exporter wrote the line.
    """

    def __init__(self, static_fields: Mapping[str, Any] | None = None) -> None:
        super().__init__()
        self._static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            **self._static_fields,
        }

        # Structured fields passed as extra={"extra": {...}}
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            entry.update(fields)

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = redact_password(self.formatException(record.exc_info))

        return json.dumps(entry, default=str)


def _build_handler(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    handler.addFilter(RedactingFilter())
    return handler


def configure_logging(config: MonitoringConfig) -> None:
    """Install pgprobe's handlers on the root logger.

    Calling this again replaces the handlers instead of stacking them.
    Database driver loggers are capped at WARNING.

    Args:
        config: Monitoring configuration with logging preferences.
    """
    if config.log_format == "json":
        formatter: logging.Formatter = JSONFormatter({"namespace": config.namespace})
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handlers = [_build_handler(logging.StreamHandler(sys.stdout), formatter)]
    if config.log_file:
        rotating = RotatingFileHandler(
            config.log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
        )
        handlers.append(_build_handler(rotating, formatter))

    root_logger = logging.getLogger()
    root_logger.setLevel(config.log_level)
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={
            "extra": {
                "log_level": config.log_level,
                "log_format": config.log_format,
                "log_file": config.log_file,
            }
        },
    )
