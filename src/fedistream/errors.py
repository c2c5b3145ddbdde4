"""Error taxonomy for the streaming core.

Only FatalConfigError and StreamClosedError ever reach the caller as
exceptions. Transport and framing failures are handled inside the receive
loop, and decode failures are delivered as ``error`` events.
"""

from __future__ import annotations


class StreamError(Exception):
    """Base class for all streaming errors."""


class TransportError(StreamError):
    """Connect or read failure. Always recoverable by reconnecting."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        close_code: int | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.close_code = close_code


class FramingError(StreamError):
    """A frame could not be assembled; the partial frame is dropped."""


class DecodeError(StreamError):
    """Unknown event kind or payload that does not match its schema."""


class FatalConfigError(StreamError, ValueError):
    """Bad selector, missing credential or invalid configuration."""


class StreamClosedError(StreamError, RuntimeError):
    """Operation attempted on a handle that has been closed."""
