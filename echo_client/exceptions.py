"""
Error types for Echo streaming sessions.

Only these errors terminate a session as a failure:
- Transport failures before or during streaming
- Server-signaled protocol errors
- Undecodable or unframeable byte streams

Malformed JSON frames are recovered in the parser and never raised.
"""

from __future__ import annotations

from typing import Any


class EchoStreamError(Exception):
    """Base streaming error with response context."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}


class TransportError(EchoStreamError):
    """Non-success status, connection failure, or broken read."""
    pass


class ProtocolError(EchoStreamError):
    """The server sent an explicit error frame."""
    pass


class DecodeError(EchoStreamError):
    """Bytes that cannot be decoded to text."""
    pass


class FrameTooLargeError(DecodeError):
    """A line grew past the configured maximum without a terminator."""

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Unterminated frame of {size} characters exceeds limit of {limit}"
        )
        self.size = size
        self.limit = limit
