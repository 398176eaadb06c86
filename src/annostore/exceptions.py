"""Custom exception hierarchy for annostore."""

from __future__ import annotations


class AnnostoreError(Exception):
    """Base exception for all annostore errors."""


class ConfigError(AnnostoreError):
    """Invalid or missing configuration."""


class InvalidArgumentError(AnnostoreError):
    """Caller supplied a missing or malformed field.

    Raised before any backend interaction, so no state has changed when
    this is seen.
    """

    def __init__(self, message: str, *, field: str = "") -> None:
        self.field = field
        super().__init__(message)


class InternalError(AnnostoreError):
    """A store operation failed for reasons the caller cannot fix.

    The underlying :class:`BackendError` is chained as ``__cause__`` and
    logged, but its details are not meant to be shown to clients.
    """

    def __init__(self, message: str = "internal", *, operation: str = "") -> None:
        self.operation = operation
        super().__init__(message)


class BackendError(AnnostoreError):
    """Key-value backend unreachable or a command failed."""

    def __init__(self, message: str, *, command: str = "") -> None:
        self.command = command
        super().__init__(message)
