"""
Event routing and session termination.

The dispatcher applies each stream item to the session accumulator and
forwards it to the consumer callbacks. The completion resolver builds the
single successful result of a session.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from ..models import StreamResult
from .models import (
    ErrorEvent,
    Metadata,
    RawFallback,
    StreamCompleted,
    StreamFailed,
    StreamItem,
    StreamState,
    Token,
    ToolCall,
)

logger = structlog.get_logger(__name__)

Callback = Callable[..., Any]


@dataclass(frozen=True)
class StreamCallbacks:
    """Consumer callbacks; any slot may be left unset. Coroutine functions are awaited."""
    on_token: Callback | None = None
    on_tool_call: Callback | None = None
    on_complete: Callback | None = None
    on_error: Callback | None = None


async def _invoke(callback: Callback | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class EventDispatcher:
    """Routes stream items to callbacks and mutates the session state."""

    def __init__(self, state: StreamState, callbacks: StreamCallbacks | None = None):
        self.state = state
        self.callbacks = callbacks or StreamCallbacks()

    async def dispatch(self, item: StreamItem) -> bool:
        """
        Apply one item; returns True when the session has reached a terminal state.

        Items arriving after termination are dropped.
        """
        if self.state.terminated:
            logger.debug("Dropping item after termination", item_type=type(item).__name__)
            return True

        match item:
            case Token(content) | RawFallback(content):
                self.state.append(content)
                await _invoke(self.callbacks.on_token, content)
                return False
            case ToolCall(descriptor):
                await _invoke(self.callbacks.on_tool_call, descriptor)
                return False
            case Metadata(conversation_id):
                self.state.record_conversation(conversation_id)
                return False
            case ErrorEvent(message):
                self.state.terminated = True
                await _invoke(self.callbacks.on_error, message)
                return True
            case StreamCompleted(result):
                self.state.terminated = True
                await _invoke(self.callbacks.on_complete, result)
                return True
            case StreamFailed():
                self.state.terminated = True
                await _invoke(self.callbacks.on_error, item.message)
                return True
            case _:
                raise TypeError(f"Unknown stream item: {item!r}")


class CompletionResolver:
    """Builds the one successful result of a session."""

    def __init__(self, state: StreamState):
        self.state = state
        self.resolved_via: str | None = None

    def resolve(self, sentinel_seen: bool) -> StreamCompleted | None:
        """
        Resolve completion from the sentinel or from source exhaustion.

        Returns None when the session already terminated or was resolved.
        """
        if self.state.terminated or self.resolved_via is not None:
            return None

        self.resolved_via = "sentinel" if sentinel_seen else "eof"
        result = StreamResult(
            response=self.state.full_text,
            conversation_id=self.state.conversation_id,
        )
        return StreamCompleted(result=result, via=self.resolved_via)
