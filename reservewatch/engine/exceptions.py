"""Exception hierarchy for the reserve decision engine."""
from typing import Any


class ReserveWatchError(Exception):
    """Base class for ReserveWatch errors. Never raised directly."""

    def __init__(self, message: str, field_name: str = "", value: Any = None):
        super().__init__(message)
        self.message = message
        self.field_name = field_name
        self.value = value


class ConfigurationError(ReserveWatchError, ValueError):
    """
    Raised for policy or deployment mistakes (unknown consensus mode,
    malformed thresholds). Never recovered; there is no default fallback.
    """


class ReadingParseError(ReserveWatchError, ValueError):
    """Raised when a reserve payload is missing or has malformed required fields."""


__all__ = [
    "ReserveWatchError",
    "ConfigurationError",
    "ReadingParseError",
]
