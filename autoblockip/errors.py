# AutoBlockIP - Error types
from __future__ import annotations


class AutoBlockError(Exception):
    """Base class for errors raised by AutoBlockIP."""


class ConfigError(AutoBlockError):
    """Configuration is missing or invalid."""


class ValidationError(AutoBlockError):
    """A record carried a malformed source address. Recovered by skipping it."""


class _ExternalCallError(AutoBlockError):
    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class FeedUnavailable(_ExternalCallError):
    """The audit-log source could not be read. Fatal for the run."""


class FirewallReadError(_ExternalCallError):
    """The current blocklist could not be fetched. The run continues with an empty set."""


class FirewallWriteError(_ExternalCallError):
    """The blocklist update failed. The firewall keeps its pre-run state."""
