"""Entry point: python -m resumable_sse URL

Tails an SSE endpoint, printing one JSON object per event to stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from .config import ConfigurationError
from .logging_config import setup_logging
from .stream import open_stream
from .wire.parser import SSEEvent


def _parse_header(value: str) -> tuple[str, str]:
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected 'Name: value', got {value!r}")
    return name.strip(), header_value.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resumable_sse", description="Tail a Server-Sent Events endpoint",
    )
    parser.add_argument("url", help="http(s) URL of the event stream")
    parser.add_argument(
        "-H", "--header", action="append", type=_parse_header, default=[],
        help="Extra request header 'Name: value' (repeatable)",
    )
    parser.add_argument("--last-event-id", default=None, help="Resume from this event id")
    parser.add_argument("--no-retry", action="store_true", help="Stop on the first disconnect")
    parser.add_argument("--max-retries", type=int, default=None, help="Reconnect budget (default: unbounded)")
    parser.add_argument("--initial-retry-delay-ms", type=float, default=None, help="First backoff delay (default: 1000)")
    parser.add_argument("--max-retry-delay-ms", type=float, default=None, help="Backoff ceiling (default: 30000)")
    parser.add_argument("--no-reconnect-on-close", action="store_true", help="Treat a clean server close as the end")
    parser.add_argument("--with-credentials", action="store_true", help="Send client cookies and auth")
    parser.add_argument("--max-events", type=int, default=None, help="Exit after this many events")
    parser.add_argument("--raw", action="store_true", help="Print events in SSE wire format")
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    parser.add_argument("--log-dir", default=None, help="Also write JSON logs to hourly files here")
    return parser


def options_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Map CLI flags onto open_stream options, leaving unset ones to config defaults."""
    options: dict[str, Any] = {
        "headers": dict(args.header),
        "with_credentials": args.with_credentials,
    }
    if args.no_retry:
        options["retry_strategy"] = False
    if args.no_reconnect_on_close:
        options["reconnect_on_close"] = False
    if args.last_event_id is not None:
        options["last_event_id"] = args.last_event_id
    if args.max_retries is not None:
        options["max_retries"] = args.max_retries
    if args.initial_retry_delay_ms is not None:
        options["initial_retry_delay_ms"] = args.initial_retry_delay_ms
    if args.max_retry_delay_ms is not None:
        options["max_retry_delay_ms"] = args.max_retry_delay_ms
    return options


def format_event(event: SSEEvent, raw: bool = False) -> str:
    if raw:
        return event.to_bytes().decode()
    return json.dumps({
        "event": event.event,
        "data": event.data,
        "id": event.id,
        "retry": event.retry,
    }) + "\n"


async def tail(url: str, options: dict[str, Any], max_events: int | None, raw: bool) -> int:
    """Print events until the stream ends or ``max_events`` is reached. Returns the count."""
    count = 0
    async with open_stream(url, **options) as stream:
        async for event in stream:
            sys.stdout.write(format_event(event, raw))
            sys.stdout.flush()
            count += 1
            if max_events is not None and count >= max_events:
                break
    return count


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_dir)

    try:
        asyncio.run(tail(args.url, options_from_args(args), args.max_events, args.raw))
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
