"""SSE frame parser.

Decodes one raw frame (the field lines between two blank lines) into an
:class:`SSEEvent` per the SSE field grammar.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from .framer import normalize_newlines

log = structlog.get_logger()


@dataclass(frozen=True)
class SSEEvent:
    """A single decoded Server-Sent Event."""

    event: str = "message"
    data: str = ""
    id: str | None = None
    retry: int | None = None

    def to_bytes(self) -> bytes:
        """Serialize back to SSE wire format."""
        lines: list[str] = []
        if self.event != "message":
            lines.append(f"event: {self.event}")
        for data_line in self.data.split("\n"):
            lines.append(f"data: {data_line}")
        if self.id is not None:
            lines.append(f"id: {self.id}")
        if self.retry is not None:
            lines.append(f"retry: {self.retry}")
        lines.append("")  # blank line terminates event
        return ("\n".join(lines) + "\n").encode()


def _parse_retry(value: str) -> int | None:
    # Digits only: "-1", "+5", " 5" and "1.5" are all rejected
    if value.isascii() and value.isdigit():
        return int(value)
    return None


def parse_frame(frame: str) -> SSEEvent | None:
    """Parse a raw frame, returning None if it carries no data field."""
    event = "message"
    data: list[str] = []
    event_id: str | None = None
    retry: int | None = None

    for line in normalize_newlines(frame).split("\n"):
        if not line or line.startswith(":"):
            continue

        field_name, sep, value = line.partition(":")
        if not sep:
            continue
        if value.startswith(" "):
            value = value[1:]

        if field_name == "event":
            event = value
        elif field_name == "data":
            data.append(value)
        elif field_name == "id":
            if "\0" in value:
                log.debug("sse_id_rejected", reason="nul")
            else:
                event_id = value
        elif field_name == "retry":
            parsed = _parse_retry(value)
            if parsed is None:
                log.debug("sse_retry_rejected", value=value[:32])
            else:
                retry = parsed

    if not data:
        return None
    return SSEEvent(event=event, data="\n".join(data), id=event_id, retry=retry)


class EventParser:
    """Stream stage mapping raw frames to events, dropping data-less frames."""

    def feed(self, frame: str) -> list[SSEEvent]:
        parsed = parse_frame(frame)
        return [] if parsed is None else [parsed]

    def finish(self) -> list[SSEEvent]:
        return []
