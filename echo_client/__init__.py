"""
Streaming client for the Echo conversational service.

This package consumes ``text/event-stream`` chat replies and rebuilds them
into typed events:
- Incremental UTF-8 decoding across chunk boundaries
- Line framing with a bounded buffer
- Frame classification with plain-text fallback
- Callback and pull-style consumer APIs
"""

from __future__ import annotations

from .client import EchoStreamClient, stream_chat
from .config import Configuration
from .exceptions import (
    DecodeError,
    EchoStreamError,
    FrameTooLargeError,
    ProtocolError,
    TransportError,
)
from .models import StreamRequest, StreamResult
from .streaming import (
    ErrorEvent,
    Event,
    Metadata,
    RawFallback,
    StreamCallbacks,
    StreamCompleted,
    StreamFailed,
    Token,
    ToolCall,
)

__all__ = [
    # Client
    "Configuration",
    "DecodeError",
    "EchoStreamClient",
    # Exceptions
    "EchoStreamError",
    "ErrorEvent",
    # Events
    "Event",
    "FrameTooLargeError",
    "Metadata",
    "ProtocolError",
    "RawFallback",
    "StreamCallbacks",
    "StreamCompleted",
    "StreamFailed",
    # Models
    "StreamRequest",
    "StreamResult",
    "Token",
    "ToolCall",
    "TransportError",
    "stream_chat",
]
