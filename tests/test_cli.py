"""Tests for the tailing CLI."""

import json
import sys

import pytest
import structlog
import respx
from httpx import Response

from resumable_sse import __main__ as cli
from resumable_sse.wire.parser import SSEEvent

URL = "https://sse.test/feed"


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    structlog.configure(logger_factory=structlog.PrintLoggerFactory(sys.stderr))
    yield
    structlog.reset_defaults()


class TestArgs:
    def test_header_parsing(self):
        args = cli.build_parser().parse_args([URL, "-H", "X-Token: abc", "-H", "Accept-Language:en"])
        assert args.header == [("X-Token", "abc"), ("Accept-Language", "en")]

    def test_bad_header_rejected(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([URL, "-H", "no-colon"])

    def test_defaults_leave_config_defaults(self):
        args = cli.build_parser().parse_args([URL])
        assert cli.options_from_args(args) == {"headers": {}, "with_credentials": False}

    def test_flags_map_to_options(self):
        args = cli.build_parser().parse_args([
            URL, "--no-retry", "--no-reconnect-on-close", "--last-event-id", "9",
            "--max-retries", "3", "--initial-retry-delay-ms", "50", "--max-retry-delay-ms", "500",
        ])
        assert cli.options_from_args(args) == {
            "headers": {},
            "with_credentials": False,
            "retry_strategy": False,
            "reconnect_on_close": False,
            "last_event_id": "9",
            "max_retries": 3,
            "initial_retry_delay_ms": 50.0,
            "max_retry_delay_ms": 500.0,
        }


class TestFormat:
    def test_json(self):
        line = cli.format_event(SSEEvent(event="e", data="d", id="1"))
        assert json.loads(line) == {"event": "e", "data": "d", "id": "1", "retry": None}
        assert line.endswith("\n")

    def test_raw(self):
        assert cli.format_event(SSEEvent(data="d"), raw=True) == "data: d\n\n"


class TestMain:
    @respx.mock
    def test_tails_events_to_stdout(self, capsys):
        respx.get(URL).mock(return_value=Response(
            200, content=b"id: 1\ndata: one\n\n: ping\n\nevent: x\ndata: two\n\n",
        ))
        cli.main([URL, "--no-retry"])
        lines = capsys.readouterr().out.splitlines()
        assert [json.loads(line)["data"] for line in lines] == ["one", "two"]

    @respx.mock
    def test_max_events_stops_early(self, capsys):
        route = respx.get(URL).mock(return_value=Response(
            200, content=b"data: one\n\ndata: two\n\n",
        ))
        cli.main([URL, "--max-events", "1"])
        assert len(capsys.readouterr().out.splitlines()) == 1
        assert route.call_count == 1

    def test_invalid_url_exits_2(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["ftp://example.com/feed"])
        assert exc_info.value.code == 2
        assert "error:" in capsys.readouterr().err
