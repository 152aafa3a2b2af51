"""
SSE frame classification for the Echo stream protocol.

Decoded text is split into lines, ``data:`` payloads are classified into
typed events, and payloads that are not JSON fall back to raw token text.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from .lines import DEFAULT_MAX_LINE_SIZE, LineSplitter
from .models import (
    DATA_PREFIX,
    DONE_SENTINEL,
    ErrorEvent,
    Event,
    Metadata,
    RawFallback,
    Token,
    ToolCall,
)

logger = structlog.get_logger(__name__)

UNKNOWN_ERROR_MESSAGE = "Unknown stream error"


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Invalid JSON constant: {name}")


def _content_text(value: Any) -> str:
    """Render a scalar content field as text; empty for missing or falsy values."""
    if not value or isinstance(value, dict | list):
        return ""
    if isinstance(value, bool):
        return "true"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class EventParser:
    """Incremental parser turning decoded text into stream events."""

    def __init__(self, max_line_size: int = DEFAULT_MAX_LINE_SIZE):
        self.splitter = LineSplitter(max_line_size)
        self.completed = False
        self.stats = {
            'frames': 0,
            'ignored_lines': 0,
            'malformed_frames': 0,
            'events': 0,
        }

    def feed(self, text: str) -> list[Event]:
        """
        Parse every line completed by ``text``.

        Stops at the completion sentinel: lines after it in the same input
        are not parsed, and later calls return nothing.
        """
        if self.completed:
            return []

        events: list[Event] = []
        for line in self.splitter.feed(text):
            payload = self._extract_payload(line)
            if payload is None:
                continue

            self.stats['frames'] += 1

            if payload == DONE_SENTINEL:
                self.completed = True
                self.splitter.reset()
                break

            event = self.parse_payload(payload)
            if event is not None:
                self.stats['events'] += 1
                events.append(event)

        return events

    def _extract_payload(self, line: str) -> str | None:
        """Return the stripped payload of a data line, or None to skip it."""
        if not line.strip():
            return None
        if not line.startswith(DATA_PREFIX):
            self.stats['ignored_lines'] += 1
            return None
        return line[len(DATA_PREFIX):].strip()

    def parse_payload(self, payload: str) -> Event | None:
        """Classify a single payload. Never raises on malformed input."""
        try:
            parsed = json.loads(payload, parse_constant=_reject_constant)
        except ValueError:
            self.stats['malformed_frames'] += 1
            if not payload:
                return None
            logger.debug("Non-JSON frame treated as text", size=len(payload))
            return RawFallback(payload)

        if parsed is None:
            # A bare null carries no envelope; keep it as text.
            return RawFallback(payload)

        if not isinstance(parsed, dict):
            logger.debug("Ignoring non-object frame", payload_type=type(parsed).__name__)
            return None

        return self._classify(parsed)

    @staticmethod
    def _classify(data: dict[str, Any]) -> Event | None:
        match data.get("type"):
            case "token":
                return Token(_content_text(data.get("content")))
            case "tool_call":
                return ToolCall(data)
            case "metadata":
                conversation_id = data.get("conversationId")
                return Metadata(str(conversation_id) if conversation_id else None)
            case "error":
                message = data.get("error") or data.get("message")
                return ErrorEvent(str(message) if message else UNKNOWN_ERROR_MESSAGE)
            case _:
                content = _content_text(data.get("content"))
                if content:
                    return Token(content)
                return None

    @property
    def pending(self) -> str:
        """Unterminated text held for the next call."""
        return self.splitter.pending

    def get_stats(self) -> dict[str, int]:
        """Get parsing statistics for monitoring."""
        return self.stats.copy()

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self.stats = {
            'frames': 0,
            'ignored_lines': 0,
            'malformed_frames': 0,
            'events': 0,
        }
