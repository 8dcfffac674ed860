"""Custom exception hierarchy for pgprobe.

All pgprobe exceptions inherit from PgProbeError,
enabling catch-all handling while allowing specific catches.
"""


class PgProbeError(Exception):
    """Base exception for all pgprobe errors."""


class ConfigurationError(PgProbeError):
    """Invalid or missing configuration."""


class InvalidDescriptorError(PgProbeError):
    """Connection descriptor is neither a URI nor a key=value string."""


class ConnectionFailedError(PgProbeError):
    """Could not open a connection to the server."""


class VersionUnparseableError(PgProbeError):
    """Server version string did not match any known format."""


class TimeoutConfigurationError(PgProbeError):
    """Failed to apply the session statement timeout."""


class QueryFailedError(PgProbeError):
    """A collector query failed."""


class ScanFailedError(QueryFailedError):
    """Discovery of the databases to scan failed."""


class NoDataError(PgProbeError):
    """Collector found nothing to report. Not a failure."""
