"""Incremental UTF-8 decoding of transport chunks."""

from __future__ import annotations

import codecs

from ..exceptions import DecodeError


class FrameDecoder:
    """
    Decodes byte chunks to text, carrying partial multi-byte sequences
    between calls so a code point split across chunks is never corrupted.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="strict")
        self.bytes_decoded = 0

    def decode(self, chunk: bytes) -> str:
        """Decode one chunk, holding back any incomplete trailing sequence."""
        self.bytes_decoded += len(chunk)
        try:
            return self._decoder.decode(chunk, final=False)
        except UnicodeDecodeError as e:
            raise DecodeError(
                f"Invalid {self.encoding} byte sequence in stream: {e.reason}"
            ) from e

    def flush(self) -> str:
        """Signal end of input; a dangling partial sequence is an error."""
        try:
            return self._decoder.decode(b"", final=True)
        except UnicodeDecodeError as e:
            raise DecodeError(
                f"Stream ended inside a {self.encoding} sequence: {e.reason}"
            ) from e

    def reset(self) -> None:
        self._decoder.reset()
        self.bytes_decoded = 0
