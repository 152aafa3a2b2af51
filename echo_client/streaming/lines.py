"""Newline framing for decoded stream text."""

from __future__ import annotations

from ..exceptions import FrameTooLargeError

DEFAULT_MAX_LINE_SIZE = 1024 * 1024


class LineSplitter:
    """
    Buffers text and pops complete lines.

    The trailing segment without a terminator is held back until a later
    ``feed`` completes it. After every call the buffer holds no complete line.
    """

    def __init__(self, max_line_size: int = DEFAULT_MAX_LINE_SIZE):
        if max_line_size < 1:
            raise ValueError("max_line_size must be at least 1")
        self.max_line_size = max_line_size
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received after the last line terminator."""
        return self._buffer

    def feed(self, text: str) -> list[str]:
        """Append text and return every line it completes, without terminators."""
        if not text:
            return []

        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")

        if len(self._buffer) > self.max_line_size:
            size = len(self._buffer)
            self._buffer = ""
            raise FrameTooLargeError(size, self.max_line_size)

        return [line.removesuffix("\r") for line in lines]

    def reset(self) -> None:
        self._buffer = ""
