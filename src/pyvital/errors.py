"""Exceptions raised by pyvital."""


class PyvitalError(Exception):
    """Base class for pyvital errors."""


class LogDestinationError(PyvitalError):
    """The performance log file could not be opened or written."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot write performance log {path}: {reason}")
        self.path = path
        self.reason = reason
