"""Unit tests for pgprobe logging and metric samples."""

from __future__ import annotations

import json
import logging
import sys
import threading
from pathlib import Path

import pytest
from pydantic import ValidationError

from pgprobe.config.settings import MonitoringConfig
from pgprobe.monitoring.logging import JSONFormatter, RedactingFilter, configure_logging
from pgprobe.monitoring.metrics import MetricKind, MetricSample, MetricsSink, build_fq_name

# ---------------------------------------------------------------------------
# Logging Tests
# ---------------------------------------------------------------------------


def _record(msg: str, args: tuple[object, ...] = (), exc_info: object = None) -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=args,
        exc_info=exc_info,  # type: ignore[arg-type]
    )


class TestJSONFormatter:
    """Tests for the JSON log formatter."""

    def test_json_format_output(self) -> None:
        """JSON formatter produces valid JSON with required keys."""
        output = JSONFormatter().format(_record("Hello %s", ("world",)))
        parsed = json.loads(output)

        assert "timestamp" in parsed
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test.logger"
        assert parsed["message"] == "Hello world"
        assert parsed["line"] == 42

    def test_json_format_with_extra(self) -> None:
        """JSON formatter merges extra fields."""
        record = _record("Collector failed")
        record.extra = {"collector": "extension", "duration_seconds": 0.25}  # type: ignore[attr-defined]
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed["collector"] == "extension"
        assert parsed["duration_seconds"] == 0.25

    def test_static_fields_on_every_entry(self) -> None:
        """Static fields appear on each line; extras may override them."""
        formatter = JSONFormatter({"namespace": "fleet"})
        assert json.loads(formatter.format(_record("one")))["namespace"] == "fleet"

        record = _record("two")
        record.extra = {"namespace": "other"}  # type: ignore[attr-defined]
        assert json.loads(formatter.format(record))["namespace"] == "other"

    def test_exception_text_redacted(self) -> None:
        """Tracebacks quoting a descriptor have the password masked."""
        try:
            raise RuntimeError("cannot reach postgres://probe:hunter2@db/app")
        except RuntimeError:
            record = _record("failed", exc_info=sys.exc_info())
        parsed = json.loads(JSONFormatter().format(record))
        assert "hunter2" not in parsed["exception"]
        assert "postgres://probe:****@db/app" in parsed["exception"]


class TestRedactingFilter:
    """Tests for password masking on log records."""

    def test_message_args_redacted(self) -> None:
        """Passwords interpolated into the message are masked."""
        record = _record("connecting with %s", ("host=db password=hunter2",))
        assert RedactingFilter().filter(record) is True
        assert record.getMessage() == "connecting with host=db password=****"

    def test_extra_strings_redacted(self) -> None:
        """String values in structured extras are masked; others are kept."""
        record = _record("failed")
        record.extra = {"error": "postgres://u:pw@h/db refused", "attempt": 2}  # type: ignore[attr-defined]
        RedactingFilter().filter(record)
        assert record.extra == {"error": "postgres://u:****@h/db refused", "attempt": 2}  # type: ignore[attr-defined]


class TestConfigureLogging:
    """Tests for the configure_logging function."""

    def test_json_logging_config(self) -> None:
        """Logging is configured with JSON format."""
        config = MonitoringConfig(log_level="DEBUG", log_format="json")
        configure_logging(config)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert any(isinstance(f, RedactingFilter) for f in root.handlers[0].filters)

    def test_text_logging_config(self) -> None:
        """Logging is configured with text format."""
        config = MonitoringConfig(log_level="WARNING", log_format="text")
        configure_logging(config)

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert not isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_file_handler_added(self, tmp_path: Path) -> None:
        """A log file adds a second, rotating handler."""
        log_file = tmp_path / "pgprobe.log"
        configure_logging(MonitoringConfig(log_file=str(log_file)))

        root = logging.getLogger()
        assert len(root.handlers) == 2
        for handler in root.handlers:
            handler.flush()
        assert "Logging configured" in log_file.read_text()
        root.handlers[1].close()
        root.handlers.clear()

    def test_noisy_loggers_suppressed(self) -> None:
        """Database driver loggers are set to WARNING."""
        configure_logging(MonitoringConfig())

        assert logging.getLogger("asyncpg").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.pool").level == logging.WARNING


# ---------------------------------------------------------------------------
# Metrics Tests
# ---------------------------------------------------------------------------


class TestBuildFqName:
    """Tests for metric name construction."""

    def test_joins_parts(self) -> None:
        """Namespace, subsystem and name are joined with underscores."""
        assert build_fq_name("pg", "extension", "info") == "pg_extension_info"

    def test_skips_empty_parts(self) -> None:
        """Empty parts do not produce doubled underscores."""
        assert build_fq_name("pg", "", "up") == "pg_up"


class TestMetricsSink:
    """Tests for the MetricsSink."""

    def test_samples_keep_emission_order(self) -> None:
        """Samples are returned in the order they were emitted."""
        sink = MetricsSink()
        sink.gauge("pg_up", 1.0)
        sink.counter("pg_scrapes_total", 3.0, {"result": "ok"})

        samples = sink.samples()
        assert [s.name for s in samples] == ["pg_up", "pg_scrapes_total"]
        assert samples[0].kind is MetricKind.GAUGE
        assert samples[1].kind is MetricKind.COUNTER
        assert samples[1].labels == {"result": "ok"}

    def test_samples_returns_copy(self) -> None:
        """Mutating the returned list does not affect the sink."""
        sink = MetricsSink()
        sink.gauge("pg_up", 1.0)
        sink.samples().clear()
        assert len(sink) == 1

    def test_snapshot_by_name(self) -> None:
        """Snapshots filter samples by name."""
        sink = MetricsSink()
        sink.gauge("a", 1.0, {"x": "1"})
        sink.gauge("b", 2.0)
        sink.gauge("a", 3.0, {"x": "2"})

        snap = sink.snapshot()
        assert [s.value for s in snap.by_name("a")] == [1.0, 3.0]
        assert snap.by_name("missing") == []
        assert snap.timestamp.tzinfo is not None

    def test_samples_are_frozen(self) -> None:
        """Emitted samples cannot be modified."""
        sample = MetricSample(name="pg_up", value=1.0)
        with pytest.raises(ValidationError):
            sample.value = 0.0  # type: ignore[misc]

    def test_concurrent_emits(self) -> None:
        """Emits from several threads are all kept."""
        sink = MetricsSink()

        def emit_many() -> None:
            for i in range(200):
                sink.gauge("pg_test", float(i))

        threads = [threading.Thread(target=emit_many) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(sink) == 800
