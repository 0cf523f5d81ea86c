"""
Custom exception hierarchy for whalefeed.

Each exception maps to a specific CLI exit code and JSON error_code field.
cli.py catches all WhalefeedError subclasses and formats them as JSON output.

Inside the monitor every subclass is recoverable: upstream failures degrade
to "try again", decode failures discard a single log entry.

Exit code mapping:
  1 — WhalefeedError (generic CLI error)
  2 — RPCError (node returned an error response, rate limit)
  3 — NetworkError (timeout, connection refused, upstream unavailable)
  4 — DataError (malformed log, undecodable payload)
  5 — ConfigError (malformed config)
"""


class WhalefeedError(Exception):
    """Base exception for all whalefeed errors."""

    exit_code: int = 1
    error_code: str = "unknown_error"

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class RPCError(WhalefeedError):
    """JSON-RPC node returned an error or an unparseable response."""

    exit_code = 2
    error_code = "rpc_error"


class RateLimitError(RPCError):
    """Node rate limit exceeded."""

    error_code = "rate_limited"

    def __init__(self, message: str, retry_after: int = 60, **kwargs) -> None:
        super().__init__(message, details={"retry_after_seconds": retry_after})
        self.retry_after = retry_after


class NetworkError(WhalefeedError):
    """Network connectivity issue — timeout or connection failure."""

    exit_code = 3
    error_code = "network_error"


class NetworkTimeoutError(NetworkError):
    """Upstream call exceeded its per-call timeout."""

    error_code = "network_timeout"


class ConnectionFailedError(NetworkError):
    """Could not connect to the RPC endpoint."""

    error_code = "connection_failed"


class UpstreamUnavailableError(NetworkError):
    """Monitor gave up reconnecting after max_retries consecutive failures."""

    error_code = "upstream_unavailable"


class DataError(WhalefeedError):
    """Upstream data could not be interpreted."""

    exit_code = 4
    error_code = "data_error"


class DecodeError(DataError):
    """Log entry is not a well-formed ERC-20 Transfer event."""

    error_code = "decode_error"


class ConfigError(WhalefeedError):
    """Config file is missing or malformed."""

    exit_code = 5
    error_code = "config_error"


class ConfigInvalidError(ConfigError):
    """Config file exists but contains invalid TOML or invalid values."""

    error_code = "config_invalid"
