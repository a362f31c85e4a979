"""Exceptions raised by sentinel-monitor."""


class SentinelError(Exception):
    """Base class for all sentinel-monitor errors."""


class ConfigurationError(SentinelError):
    """Configuration is missing, unreadable or lacks required fields."""

    def __init__(self, message: str, diagnostics: list[str] | None = None):
        super().__init__(message)
        self.diagnostics = diagnostics or []


class SearchFailure(SentinelError):
    """Searching a log file failed for a reason other than "no matches"."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class NotificationFailure(SentinelError):
    """The mail transport could not deliver an alert."""
