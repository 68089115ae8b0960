from __future__ import annotations


class BingoBotError(Exception):
    """Base class for errors raised by this package."""


class ConfigError(BingoBotError):
    pass


class BackendError(BingoBotError):
    pass


class BackendUnavailable(BackendError):
    """Backend unreachable, timed out, or failed with a server error."""


class BackendRejected(BackendError):
    """The backend refused the request; ``message`` is shown to the user verbatim."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ProtocolError(BingoBotError):
    """An event that does not fit the notification contract."""
