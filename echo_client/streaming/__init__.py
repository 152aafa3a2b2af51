"""
Streaming pipeline for Echo replies.

This package contains:
- Incremental decoding and line framing
- SSE frame classification
- Event dispatch and completion resolution
"""

from __future__ import annotations

from .decoder import FrameDecoder
from .dispatcher import CompletionResolver, EventDispatcher, StreamCallbacks
from .lines import LineSplitter
from .models import (
    ErrorEvent,
    Event,
    Metadata,
    RawFallback,
    StreamCompleted,
    StreamFailed,
    StreamItem,
    StreamState,
    Token,
    ToolCall,
)
from .parser import EventParser
from .session import StreamSession

__all__ = [
    "CompletionResolver",
    "ErrorEvent",
    "Event",
    "EventDispatcher",
    "EventParser",
    "FrameDecoder",
    "LineSplitter",
    "Metadata",
    "RawFallback",
    "StreamCallbacks",
    "StreamCompleted",
    "StreamFailed",
    "StreamItem",
    "StreamSession",
    "StreamState",
    "Token",
    "ToolCall",
]
