"""Exception types raised inside the EcoPlug control engine.

Only `ConfigurationError` is allowed to escape to the process entry point. The
others are raised by the store bindings and parsers and are handled by the
poller, which logs them and lets the next tick retry.
"""


class EcoPlugError(Exception):
    """Base class for all errors raised by `ecoplug_control`."""


class ConfigurationError(EcoPlugError):
    """Raised when settings are missing or cannot be parsed."""


class ScheduleParseError(EcoPlugError):
    """Raised when a schedule time window cannot be parsed."""


class StoreError(EcoPlugError):
    """Base class for document store failures."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class StoreUnavailableError(StoreError):
    """Raised when a read against the document store fails."""


class StoreWriteError(StoreError):
    """Raised when a patch or push against the document store fails."""
