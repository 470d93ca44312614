"""Tests for tabby.collectors.messages — log entries, interpolation and aggregation."""

from __future__ import annotations

import datetime as dt
import enum
import gc
import logging

import pytest

from tabby._errors import CollectorError
from tabby.collectors.formatter import DataFormatter
from tabby.collectors.messages import (
    MessagesCollector,
    MessagesHandler,
    interpolate,
    level_for,
    sanitize_html,
    stringify_context_value,
)
from tests.conftest import FakeClock


class _Color(enum.Enum):
    RED = "red"
    PAIR = (1, 2)


class _Named:
    def __str__(self) -> str:
        return "named!"


class _Plain:
    pass


@pytest.fixture
def formatter() -> DataFormatter:
    return DataFormatter()


@pytest.fixture
def messages(clock: FakeClock) -> MessagesCollector:
    return MessagesCollector(clock=clock)


# ---------------------------------------------------------------------------
# add_message / levels
# ---------------------------------------------------------------------------


class TestAddMessage:
    """add_message — entries with text and optional HTML."""

    def test_string_message(self, messages: MessagesCollector, clock: FakeClock) -> None:
        entry = messages.add_message("hello", "warning")
        assert entry.message == "hello"
        assert entry.message_html is None
        assert entry.is_string is True
        assert entry.label == "warning"
        assert entry.time == clock.now

    def test_non_string_message_is_dumped(self, messages: MessagesCollector) -> None:
        entry = messages.add_message({"user": 1})
        assert entry.message == "{'user': 1}"
        assert entry.is_string is False
        assert entry.message_html is None

    def test_html_dump_when_enabled(self, clock: FakeClock) -> None:
        messages = MessagesCollector(use_html_var_dumper=True, clock=clock)
        entry = messages.add_message(["<x>"])
        assert entry.message_html is not None
        assert "&lt;x&gt;" in entry.message_html

    def test_html_string_is_sanitized(self, messages: MessagesCollector) -> None:
        entry = messages.add_message("<b onclick='x()'>hi</b><script>alert(1)</script>", is_string=False)
        assert entry.message_html == "<b>hi</b>"
        assert entry.is_string is False

    def test_level_methods(self, messages: MessagesCollector) -> None:
        messages.emergency("a")
        messages.alert("b")
        messages.critical("c")
        messages.error("d")
        messages.warning("e")
        messages.notice("f")
        messages.info("g")
        messages.debug("h")
        labels = [m.label for m in messages.get_messages()]
        assert labels == [
            "emergency", "alert", "critical", "error", "warning", "notice", "info", "debug",
        ]

    def test_log_interpolates(self, messages: MessagesCollector) -> None:
        messages.log("info", "User {id} did {action}", {"id": 42, "action": "login"})
        assert messages.get_messages()[0].message == "User 42 did login"


class TestFileTrace:
    """Origin filename when file traces are collected."""

    def test_off_by_default(self, messages: MessagesCollector) -> None:
        entry = messages.add_message("x")
        assert entry.filename is None
        assert entry.origin_link is None

    def test_points_at_caller(self, messages: MessagesCollector) -> None:
        messages.collect_file_trace()
        messages.info("x")
        entry = messages.get_messages()[0]
        assert entry.filename is not None
        assert entry.filename.startswith("test_messages.py:")
        assert messages.collects_file_trace


# ---------------------------------------------------------------------------
# Interpolation
# ---------------------------------------------------------------------------


class TestInterpolate:
    """interpolate / stringify_context_value."""

    def test_replaces_known_keys(self, formatter: DataFormatter) -> None:
        result = interpolate("User {id} did {action}", {"id": 42, "action": "login"}, formatter)
        assert result == "User 42 did login"

    def test_missing_key_left_intact(self, formatter: DataFormatter) -> None:
        result = interpolate("User {id} did {action}", {"id": 42}, formatter)
        assert result == "User 42 did {action}"

    def test_unknown_keys_left_intact(self, formatter: DataFormatter) -> None:
        assert interpolate("Hi {name} {missing}", {"name": "Ann"}, formatter) == "Hi Ann {missing}"

    def test_no_context(self, formatter: DataFormatter) -> None:
        assert interpolate("Hi {name}", None, formatter) == "Hi {name}"

    def test_placeholder_with_whitespace_ignored(self, formatter: DataFormatter) -> None:
        assert interpolate("{a b}", {"a b": 1}, formatter) == "{a b}"

    def test_scalars(self, formatter: DataFormatter) -> None:
        assert stringify_context_value(None, formatter) == ""
        assert stringify_context_value(True, formatter) == "1"
        assert stringify_context_value(False, formatter) == ""
        assert stringify_context_value(1.5, formatter) == "1.5"

    def test_enum(self, formatter: DataFormatter) -> None:
        assert stringify_context_value(_Color.RED, formatter) == "red"
        assert stringify_context_value(_Color.PAIR, formatter) == "PAIR"

    def test_datetime(self, formatter: DataFormatter) -> None:
        value = dt.datetime(2024, 1, 2, 3, 4, 5)
        assert stringify_context_value(value, formatter) == "2024-01-02T03:04:05.000000"
        assert stringify_context_value(dt.date(2024, 1, 2), formatter) == "2024-01-02T00:00:00.000000"

    def test_containers(self, formatter: DataFormatter) -> None:
        assert stringify_context_value([1, "a"], formatter) == 'array[1,"a"]'
        assert stringify_context_value({"k": object()}, formatter) == "null"

    def test_objects(self, formatter: DataFormatter) -> None:
        assert stringify_context_value(_Named(), formatter) == "named!"
        assert stringify_context_value(_Plain(), formatter) == f"[object {__name__}._Plain]"
        assert stringify_context_value(b"x", formatter) == "[bytes]"
        assert stringify_context_value(len, formatter) == "[builtin_function_or_method]"


class TestSanitizeHtml:
    """sanitize_html — allow-listed tags only."""

    def test_keeps_allowed_tags(self) -> None:
        assert sanitize_html("<p><em>x</em></p>") == "<p><em>x</em></p>"

    def test_drops_unknown_tags_but_keeps_text(self) -> None:
        assert sanitize_html("<marquee>hey</marquee>") == "hey"

    def test_neutralizes_javascript_links(self) -> None:
        assert sanitize_html('<a href="javascript:alert(1)">x</a>') == '<a href="#">x</a>'

    def test_escapes_text(self) -> None:
        assert sanitize_html("1 < 2 & 3") == "1 &lt; 2 &amp; 3"

    def test_drops_style_content(self) -> None:
        assert sanitize_html("<style>p{}</style>ok") == "ok"


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


class TestAggregate:
    """aggregate — merged, tagged, time-ordered reads."""

    def test_merges_by_time(self, clock: FakeClock) -> None:
        main = MessagesCollector(clock=clock)
        other = MessagesCollector("worker", clock=clock)
        main.aggregate(other)

        clock.now = 2.0
        main.info("own")
        clock.now = 1.0
        other.info("aggregated")

        entries = main.get_messages()
        assert [e.message for e in entries] == ["aggregated", "own"]
        assert entries[0].collector == "worker"
        assert entries[1].collector is None

    def test_stable_for_equal_times(self, clock: FakeClock) -> None:
        main = MessagesCollector(clock=clock)
        other = MessagesCollector("other", clock=clock)
        main.aggregate(other)
        main.info("first")
        other.info("second")
        assert [e.message for e in main.get_messages()] == ["first", "second"]

    def test_reads_live_state(self, messages: MessagesCollector, clock: FakeClock) -> None:
        other = MessagesCollector("late", clock=clock)
        messages.aggregate(other)
        other.info("added after registration")
        assert messages.collect()["count"] == 1

    def test_source_entries_not_tagged(self, messages: MessagesCollector, clock: FakeClock) -> None:
        other = MessagesCollector("other", clock=clock)
        messages.aggregate(other)
        other.info("x")
        messages.get_messages()
        assert other.get_messages()[0].collector is None

    def test_self_aggregation_rejected(self, messages: MessagesCollector) -> None:
        with pytest.raises(CollectorError, match="aggregate itself"):
            messages.aggregate(messages)

    def test_mutual_aggregation_terminates(
        self, messages: MessagesCollector, clock: FakeClock
    ) -> None:
        other = MessagesCollector("other", clock=clock)
        messages.aggregate(other)
        other.aggregate(messages)
        messages.info("own")
        clock.advance(1)
        other.info("theirs")

        assert [(e.message, e.collector) for e in messages.get_messages()] == [
            ("own", None),
            ("theirs", "other"),
        ]
        assert [(e.message, e.collector) for e in other.get_messages()] == [
            ("own", "messages"),
            ("theirs", None),
        ]

    def test_propagates_file_trace(self, messages: MessagesCollector, clock: FakeClock) -> None:
        messages.collect_file_trace()
        other = MessagesCollector("other", clock=clock)
        messages.aggregate(other)
        assert other.collects_file_trace

    def test_dead_source_skipped(self, messages: MessagesCollector, clock: FakeClock) -> None:
        other = MessagesCollector("gone", clock=clock)
        other.info("x")
        messages.aggregate(other)
        del other
        gc.collect()
        assert messages.get_messages() == []

    def test_clear_keeps_aggregates(self, messages: MessagesCollector, clock: FakeClock) -> None:
        other = MessagesCollector("other", clock=clock)
        messages.aggregate(other)
        messages.info("own")
        other.info("theirs")
        messages.clear()
        assert [e.message for e in messages.get_messages()] == ["theirs"]


class TestCollect:
    """collect — serializable snapshot."""

    def test_snapshot(self, messages: MessagesCollector, clock: FakeClock) -> None:
        messages.info("hello")
        data = messages.collect()
        assert data["count"] == 1
        assert data["messages"] == [{
            "message": "hello",
            "message_html": None,
            "is_string": True,
            "label": "info",
            "time": clock.now,
            "filename": None,
            "origin_link": None,
        }]


# ---------------------------------------------------------------------------
# logging bridge
# ---------------------------------------------------------------------------


class TestMessagesHandler:
    """MessagesHandler — stdlib logging records into the collector."""

    def test_level_mapping(self) -> None:
        assert level_for(logging.CRITICAL) == "critical"
        assert level_for(logging.ERROR) == "error"
        assert level_for(logging.WARNING) == "warning"
        assert level_for(logging.INFO) == "info"
        assert level_for(logging.DEBUG) == "debug"

    def test_forwards_records(self, messages: MessagesCollector) -> None:
        logger = logging.getLogger("tabby.tests.handler")
        logger.setLevel(logging.DEBUG)
        logger.propagate = False
        handler = MessagesHandler(messages)
        logger.addHandler(handler)
        try:
            logger.warning("disk at %d%%", 91)
        finally:
            logger.removeHandler(handler)

        (entry,) = messages.get_messages()
        assert entry.message == "disk at 91%"
        assert entry.label == "warning"
