"""pgprobe: collects operational metrics from a PostgreSQL server."""

__version__ = "0.1.0"
