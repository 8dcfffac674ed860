"""Default values for pgprobe configuration."""

DEFAULT_STATEMENT_TIMEOUT_SECONDS = 0.0

DEFAULT_EXTENSION_MAX_DATABASES = 50

DEFAULT_NAMESPACE = "pg"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "json"
DEFAULT_SCRAPE_TIMEOUT_SECONDS = 30.0
