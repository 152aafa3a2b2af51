"""
Typed stream events and per-session state.

Frames classify into one of the ``Event`` variants. A session ends with
exactly one terminal item: ``StreamCompleted`` or ``StreamFailed``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..exceptions import EchoStreamError
from ..models import StreamResult

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class Token:
    """Incremental slice of the reply text."""
    content: str


@dataclass(frozen=True)
class ToolCall:
    """Mid-stream tool invocation, passed through verbatim."""
    descriptor: dict[str, Any]


@dataclass(frozen=True)
class Metadata:
    """Out-of-band session information."""
    conversation_id: str | None


@dataclass(frozen=True)
class ErrorEvent:
    """Server-signaled error frame."""
    message: str


@dataclass(frozen=True)
class RawFallback:
    """Plain-text payload that was not a JSON envelope."""
    content: str


Event = Token | ToolCall | Metadata | ErrorEvent | RawFallback


@dataclass(frozen=True)
class StreamCompleted:
    """Terminal item for a successful session."""
    result: StreamResult
    via: str = "sentinel"


@dataclass(frozen=True)
class StreamFailed:
    """Terminal item for a failed session."""
    error: EchoStreamError

    @property
    def message(self) -> str:
        return str(self.error)


Terminal = StreamCompleted | StreamFailed
StreamItem = Event | Terminal


@dataclass
class StreamState:
    """Mutable accumulator for one session."""
    full_text: str = ""
    conversation_id: str | None = None
    terminated: bool = False
    token_count: int = 0

    def append(self, content: str) -> None:
        """Append token content in arrival order."""
        self.full_text += content
        self.token_count += 1

    def record_conversation(self, conversation_id: str | None) -> None:
        """Keep the last conversation id the server announced."""
        if conversation_id:
            self.conversation_id = conversation_id
