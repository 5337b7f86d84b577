"""Incremental SSE framer.

Splits a chunked text stream into raw frames on the blank-line delimiter,
holding at most one incomplete trailing frame between chunks.
"""

from __future__ import annotations

from dataclasses import dataclass

DELIMITER = "\n\n"


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


@dataclass
class Framer:
    """Turns text chunks of arbitrary alignment into complete raw frames."""

    _buffer: str = ""

    @property
    def pending(self) -> str:
        """The incomplete trailing frame currently buffered."""
        return self._buffer

    def feed(self, chunk: str) -> list[str]:
        """Feed a chunk of text, return any frames it completed."""
        if not chunk:
            return []

        text = self._buffer + chunk
        # A trailing \r may be the first half of a \r\n split across chunks
        held = ""
        if text.endswith("\r"):
            text, held = text[:-1], "\r"
        text = normalize_newlines(text)

        parts = text.split(DELIMITER)
        self._buffer = parts[-1] + held
        return [part for part in parts[:-1] if part.strip()]

    def finish(self) -> list[str]:
        """Flush the residual buffer as a final frame at end of stream."""
        residual = normalize_newlines(self._buffer)
        self._buffer = ""
        if residual.strip():
            return [residual]
        return []
