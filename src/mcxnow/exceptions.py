"""Client-specific exceptions."""

from __future__ import annotations


class MCXNowError(Exception):
    """Base exception for all quote client failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: object = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.cause = cause

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        if self.status_code is None:
            return str(self.args[0])
        return f"{self.status_code}: {self.args[0]}"


class InitializationError(MCXNowError):
    """Raised when the snapshot fetch fails (non-200, timeout or bad body)."""


class ConnectError(MCXNowError):
    """Raised when the event stream cannot be opened."""


class TransportError(MCXNowError):
    """Raised for I/O failures after the event stream was opened."""


class ServerSignaledError(MCXNowError):
    """Application-level error reported by the server in an ``error`` event."""


class MalformedPayloadError(MCXNowError):
    """Raised when an event payload cannot be decoded. Always recovered locally."""
