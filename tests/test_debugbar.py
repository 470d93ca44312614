"""Tests for tabby.debugbar — the per-request collector registry."""

from __future__ import annotations

import warnings
from pathlib import Path
from typing import Any

import pytest

from tabby._errors import CollectorError, StorageError
from tabby.collectors import (
    ExceptionsCollector,
    MessagesCollector,
    ObjectCountCollector,
    QueryCollector,
    TimeCollector,
)
from tabby.config import TabbyConfig
from tabby.debugbar import DebugBar, MessageLogger, QueryRecorder, Timer
from tabby.storage import FileStorage
from tests.conftest import FakeClock


class _Broken:
    name = "broken"

    def collect(self) -> dict[str, Any]:
        msg = "boom"
        raise RuntimeError(msg)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    """add_collector / lookup."""

    def test_add_and_lookup(self) -> None:
        bar = DebugBar()
        messages = MessagesCollector()
        bar.add_collector(messages)
        assert bar.has_collector("messages")
        assert "messages" in bar
        assert bar["messages"] is messages
        assert bar.collectors == {"messages": messages}

    def test_duplicate_name_rejected(self) -> None:
        bar = DebugBar()
        bar.add_collector(MessagesCollector())
        with pytest.raises(CollectorError, match="already"):
            bar.add_collector(MessagesCollector())

    def test_reserved_name_rejected(self) -> None:
        with pytest.raises(CollectorError, match="reserved"):
            DebugBar().add_collector(MessagesCollector("__meta"))

    def test_unknown_collector(self) -> None:
        with pytest.raises(CollectorError, match="not a registered"):
            DebugBar()["queries"]

    def test_typed_accessor_checks_type(self) -> None:
        bar = DebugBar()
        bar.add_collector(MessagesCollector("queries"))
        with pytest.raises(CollectorError, match="not a QueryCollector"):
            _ = bar.queries

    def test_request_id_generated(self) -> None:
        assert len(DebugBar().request_id) == 32
        assert DebugBar(request_id="fixed").request_id == "fixed"


class TestStandard:
    """DebugBar.standard — collectors wired from config."""

    def test_standard_collectors(self) -> None:
        bar = DebugBar.standard()
        assert isinstance(bar.messages, MessagesCollector)
        assert isinstance(bar.queries, QueryCollector)
        assert isinstance(bar.exceptions, ExceptionsCollector)
        assert isinstance(bar.counter, ObjectCountCollector)
        assert isinstance(bar.timer, TimeCollector)
        assert list(bar.collectors) == ["time", "messages", "queries", "exceptions", "counter"]

    def test_collectors_share_links(self) -> None:
        bar = DebugBar.standard(TabbyConfig(editor="vscode"))
        assert bar.messages.links is bar.queries.links is bar.links
        assert bar.links.template.startswith("vscode://")

    def test_config_flags_applied(self) -> None:
        config = TabbyConfig(
            find_source=2,
            collect_file_trace=False,
            render_sql_with_params=True,
            chain_exceptions=True,
        )
        bar = DebugBar.standard(config)
        assert bar.queries.find_source == 2
        assert bar.queries.render_sql_with_params is True
        assert bar.queries.timeline is bar.timer
        assert not bar.messages.collects_file_trace
        assert bar.exceptions.chain_exceptions is True

    def test_find_source_disabled(self) -> None:
        bar = DebugBar.standard(TabbyConfig(find_source=False))
        assert bar.queries.find_source is False

    def test_collect_warnings(self) -> None:
        previous = warnings.showwarning
        bar = DebugBar.standard(TabbyConfig(collect_warnings=True))
        try:
            assert warnings.showwarning != previous
        finally:
            bar.close()
        assert warnings.showwarning == previous

    def test_satisfies_interfaces(self) -> None:
        bar = DebugBar.standard()
        logger: MessageLogger = bar.messages
        recorder: QueryRecorder = bar.queries
        timer: Timer = bar.timer
        assert logger is bar.messages
        assert recorder is bar.queries
        assert timer is bar.timer

    def test_enable_file_traces(self) -> None:
        bar = DebugBar.standard(TabbyConfig(find_source=False, collect_file_trace=False))
        bar.enable_file_traces()
        assert bar.queries.find_source == 5
        assert bar.messages.collects_file_trace
        bar.enable_file_traces(False)
        assert bar.queries.find_source is False

    def test_set_editor(self) -> None:
        bar = DebugBar.standard()
        assert bar.set_editor("cursor", {"/srv": "/home"})
        assert bar.queries.links.template.startswith("cursor://")
        assert bar.links.replacements == {"/srv": "/home"}


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


class TestCollect:
    """collect / get_data / save."""

    def test_dataset_layout(self, clock: FakeClock) -> None:
        bar = DebugBar.standard(request_id="req1", clock=clock)
        bar.messages.info("hello")
        bar.queries.add_query("SELECT 1", duration=0.001)

        data = bar.collect(method="GET", uri="/users")
        assert data["__meta"]["id"] == "req1"
        assert data["__meta"]["utime"] == clock.now
        assert data["__meta"]["method"] == "GET"
        assert data["__meta"]["uri"] == "/users"
        assert data["messages"]["count"] == 1
        assert data["queries"]["nb_statements"] == 1
        assert data["time"]["measures"][0]["collector"] == "db"

    def test_failing_collector_isolated(self, capsys: pytest.CaptureFixture[str]) -> None:
        bar = DebugBar()
        bar.add_collector(_Broken())
        bar.add_collector(MessagesCollector())

        data = bar.collect()
        assert data["broken"] == {"error": "RuntimeError: boom"}
        assert data["messages"] == {"count": 0, "messages": []}
        assert "collector 'broken' failed" in capsys.readouterr().err

    def test_get_data_collects_once(self) -> None:
        bar = DebugBar()
        bar.add_collector(MessagesCollector())
        first = bar.get_data()
        bar.messages.info("later")
        assert bar.get_data() is first

    def test_save_writes_to_storage(self, storage: FileStorage) -> None:
        bar = DebugBar.standard(storage=storage, request_id="saved")
        bar.messages.info("persist me")
        bar.save(uri="/x")
        stored = storage.get("saved")
        assert stored["messages"]["messages"][0]["message"] == "persist me"
        assert stored["__meta"]["uri"] == "/x"

    def test_save_without_storage(self) -> None:
        data = DebugBar().save()
        assert "__meta" in data

    def test_save_propagates_storage_errors(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        bar = DebugBar(storage=FileStorage(blocker))
        with pytest.raises(StorageError):
            bar.save()

    def test_summary(self) -> None:
        bar = DebugBar.standard(request_id="r")
        bar.queries.add_query("SELECT 1", duration=0.002)
        bar.messages.info("a")
        bar.collect(method="GET", uri="/")
        assert bar.summary() == "  [tabby] GET / -> 1 queries (2ms), 1 messages [r]"
