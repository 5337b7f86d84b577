"""Tests for SSE frame parser."""

import pytest

from resumable_sse.wire.parser import EventParser, SSEEvent, parse_frame


class TestSSEEvent:
    def test_defaults(self):
        event = SSEEvent()
        assert event.event == "message"
        assert event.data == ""
        assert event.id is None
        assert event.retry is None

    def test_immutable(self):
        event = SSEEvent(data="x")
        with pytest.raises(AttributeError):
            event.data = "y"  # type: ignore[misc]

    def test_structural_equality(self):
        assert SSEEvent(data="a", id="1") == SSEEvent(data="a", id="1")
        assert SSEEvent(data="a", id="1") != SSEEvent(data="a", id="2")

    def test_to_bytes_basic(self):
        event = SSEEvent(event="update", data='{"type":"update"}')
        result = event.to_bytes()
        assert b"event: update\n" in result
        assert b'data: {"type":"update"}\n' in result
        assert result.endswith(b"\n\n")

    def test_to_bytes_omits_default_event_type(self):
        assert b"event:" not in SSEEvent(data="hi").to_bytes()

    def test_to_bytes_multiline_data(self):
        result = SSEEvent(data="line1\nline2").to_bytes()
        assert b"data: line1\n" in result
        assert b"data: line2\n" in result

    def test_to_bytes_with_id_and_retry(self):
        result = SSEEvent(data="hello", id="42", retry=3000).to_bytes()
        assert b"id: 42\n" in result
        assert b"retry: 3000\n" in result

    def test_roundtrip(self):
        original = SSEEvent(event="test", data="hello\nworld", id="9")
        assert parse_frame(original.to_bytes().decode()) == original


class TestParseFrame:
    def test_single_event(self):
        event = parse_frame("event: test\ndata: hello")
        assert event == SSEEvent(event="test", data="hello")

    def test_default_event_type(self):
        assert parse_frame("data: hi").event == "message"

    def test_multiline_data_joined_in_order(self):
        assert parse_frame("data: a\ndata: b\n").data == "a\nb"

    def test_empty_data_lines_preserved(self):
        assert parse_frame("data:\ndata: x").data == "\nx"

    def test_comment_only_frame_yields_nothing(self):
        assert parse_frame(": keepalive\n: another") is None

    def test_frame_without_data_yields_nothing(self):
        assert parse_frame("event: ping\nid: 5\nretry: 10") is None

    def test_comment_lines_ignored(self):
        event = parse_frame(": comment\nevent: test\ndata: hi")
        assert event.event == "test"
        assert event.data == "hi"

    def test_line_without_colon_ignored(self):
        assert parse_frame("event\ndata: hi") == SSEEvent(data="hi")
        assert parse_frame("data") is None

    def test_only_one_leading_space_stripped(self):
        assert parse_frame("data:  two spaces").data == " two spaces"
        assert parse_frame("data:nospace").data == "nospace"

    def test_value_keeps_later_colons(self):
        assert parse_frame("data: a:b: c").data == "a:b: c"

    def test_last_event_type_wins(self):
        assert parse_frame("event: a\nevent: b\ndata: x").event == "b"

    def test_last_id_wins(self):
        assert parse_frame("id: 1\nid: 2\ndata: x").id == "2"

    def test_empty_id_is_kept(self):
        assert parse_frame("id:\ndata: x").id == ""

    def test_nul_id_ignored(self):
        assert parse_frame("id: 1\nid: bad\0id\ndata: x").id == "1"
        assert parse_frame("id: a\0b\ndata: x").id is None

    def test_retry_field(self):
        assert parse_frame("retry: 3000\ndata: hi").retry == 3000

    @pytest.mark.parametrize("value", ["abc", "-1", "1.5", "", "+5", "12abc", "١٢"])
    def test_malformed_retry_ignored(self, value):
        event = parse_frame(f"retry: {value}\ndata: hi")
        assert event is not None
        assert event.retry is None

    def test_malformed_retry_keeps_earlier_value(self):
        assert parse_frame("retry: 100\nretry: x\ndata: hi").retry == 100

    def test_unknown_fields_ignored(self):
        assert parse_frame("foo: bar\ndata: hi") == SSEEvent(data="hi")

    def test_field_names_are_case_sensitive(self):
        assert parse_frame("Data: hi") is None

    def test_crlf_frame(self):
        assert parse_frame("event: e\r\ndata: a\r\ndata: b") == SSEEvent(event="e", data="a\nb")


class TestEventParser:
    def test_feed_returns_event_list(self):
        parser = EventParser()
        assert parser.feed("data: hi") == [SSEEvent(data="hi")]

    def test_feed_drops_dataless_frames(self):
        parser = EventParser()
        assert parser.feed(": ping") == []

    def test_finish_is_empty(self):
        assert EventParser().finish() == []
