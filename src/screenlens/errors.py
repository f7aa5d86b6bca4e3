"""Exception taxonomy shared by the gateway, history and CLI layers.

Gateway errors propagate to callers of analyze_screen() / follow_up(); the
CLI and Assistant turn them into localized messages (see screenlens.messages).
PersistenceError is never raised to callers of HistoryRepository; it is
delivered to the on_persist_error callback and logged.
"""

from __future__ import annotations


class ScreenlensError(Exception):
    """Base class for all screenlens errors."""


class ConfigurationError(ScreenlensError):
    """Missing credential or unusable endpoint. Raised before any network I/O."""


class MissingCredentialError(ConfigurationError):
    """No gateway credential in the secret store or the static fallback."""


class ConnectivityError(ScreenlensError):
    """No network path to the model gateway host."""


class ServerError(ScreenlensError):
    """The gateway answered with a non-2xx status.

    Attributes:
        status_code: HTTP status returned by the provider.
        message: Server-supplied error message, or the raw body text.
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}")


class EmptyResponseError(ScreenlensError):
    """2xx response without usable answer content."""


class DecodeError(ScreenlensError):
    """The response payload did not have the chat-completions shape."""


class PersistenceError(ScreenlensError):
    """Durable read/write of the history collection failed."""
