"""DebugBar — the request-scoped context that owns every collector.

Application code receives the DebugBar for the current request and talks
to the collector for the concern at hand through a small interface:

- ``debugbar.messages`` (``MessageLogger``): ``log()``, ``info()``, ...
- ``debugbar.queries`` (``QueryRecorder``): ``start_query_measure()``, ``add_query()``, ...
- ``debugbar.timer`` (``Timer``): ``start_measure()``, ``measure()``, ...

At the end of the request ``collect()`` produces one mapping from
collector name to snapshot, plus a ``__meta`` entry, and ``save()`` writes
it to storage under the request id.

Thread Safety:
    None.  A DebugBar belongs to a single request.

"""

from __future__ import annotations

import datetime as dt
import sys
import time
import tracemalloc
import uuid
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol

from tabby._errors import CollectorError
from tabby.collectors.base import Collector
from tabby.collectors.counter import ObjectCountCollector
from tabby.collectors.exceptions import ExceptionsCollector
from tabby.collectors.formatter import DataFormatter
from tabby.collectors.frames import DEFAULT_SOURCE_LIMIT
from tabby.collectors.links import EditorLinks
from tabby.collectors.messages import MessagesCollector
from tabby.collectors.queries import QueryCollector
from tabby.collectors.timeline import TimeCollector
from tabby.config import TabbyConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from tabby._types import Bindings, Snapshot
    from tabby.collectors.messages import MessageEntry
    from tabby.collectors.queries import QueryEvent, QueryTimer
    from tabby.collectors.timeline import Measure
    from tabby.storage import FileStorage


# ---------------------------------------------------------------------------
# Per-concern interfaces
# ---------------------------------------------------------------------------


class MessageLogger(Protocol):
    """Logging surface of the toolbar."""

    def add_message(
        self, message: Any, label: str = ..., is_string: bool = ...
    ) -> MessageEntry: ...

    def log(self, level: str, message: Any, context: Mapping[str, Any] | None = ...) -> None: ...

    def info(self, message: Any, context: Mapping[str, Any] | None = ...) -> None: ...

    def warning(self, message: Any, context: Mapping[str, Any] | None = ...) -> None: ...

    def error(self, message: Any, context: Mapping[str, Any] | None = ...) -> None: ...

    def debug(self, message: Any, context: Mapping[str, Any] | None = ...) -> None: ...


class QueryRecorder(Protocol):
    """Database surface of the toolbar."""

    def start_query_measure(self) -> QueryTimer: ...

    def add_query(self, sql: str, bindings: Bindings = ..., **metadata: Any) -> QueryEvent: ...

    def add_transaction_event(self, event: str, **metadata: Any) -> QueryEvent: ...

    def add_comment(self, comment: str, **metadata: Any) -> QueryEvent: ...


class Timer(Protocol):
    """Timeline surface of the toolbar."""

    def start_measure(
        self, name: str, label: str | None = ..., collector: str | None = ...
    ) -> None: ...

    def stop_measure(self, name: str, params: dict[str, Any] | None = ...) -> Measure: ...

    def has_started_measure(self, name: str) -> bool: ...

    def measure(self, label: str, collector: str | None = ...) -> AbstractContextManager[None]: ...


# ---------------------------------------------------------------------------
# DebugBar
# ---------------------------------------------------------------------------


class DebugBar:
    """Holds the collectors of one request.

    Args:
        config: Toolbar configuration (defaults apply when omitted).
        storage: Where ``save()`` writes the collected dataset.
        request_id: Dataset id; a random hex id by default.
        clock: Wall-clock source in seconds.

    """

    __slots__ = (
        "_clock",
        "_collectors",
        "_config",
        "_data",
        "_formatter",
        "_links",
        "_request_id",
        "_storage",
    )

    def __init__(
        self,
        config: TabbyConfig | None = None,
        *,
        storage: FileStorage | None = None,
        request_id: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or TabbyConfig()
        self._storage = storage
        self._request_id = request_id or uuid.uuid4().hex
        self._clock = clock
        self._collectors: dict[str, Collector] = {}
        self._data: dict[str, Any] | None = None
        self._formatter = DataFormatter()
        self._links = EditorLinks(
            self._config.editor_link_template, self._config.path_replacements
        )
        if self._config.editor and not self._config.editor_link_template:
            self._links.set_editor(self._config.editor)

    @classmethod
    def standard(
        cls,
        config: TabbyConfig | None = None,
        *,
        storage: FileStorage | None = None,
        request_id: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> DebugBar:
        """A DebugBar with the time, messages, queries, exceptions and counter collectors."""
        bar = cls(config, storage=storage, request_id=request_id, clock=clock)
        cfg = bar.config
        if cfg.trace_memory and not tracemalloc.is_tracing():
            tracemalloc.start()

        shared = {"formatter": bar._formatter, "links": bar._links, "clock": clock}
        timeline = TimeCollector(**shared)
        messages = MessagesCollector(
            exclude_paths=cfg.exclude_paths,
            use_html_var_dumper=cfg.use_html_var_dumper,
            backtrace_depth=cfg.backtrace_depth,
            **shared,
        )
        messages.collect_file_trace(cfg.collect_file_trace)
        queries = QueryCollector(
            exclude_paths=cfg.exclude_paths,
            find_source=cfg.source_limit if cfg.find_source is not False else False,
            render_sql_with_params=cfg.render_sql_with_params,
            duration_background=cfg.duration_background,
            timeline=timeline,
            backtrace_depth=cfg.backtrace_depth,
            **shared,
        )
        exceptions = ExceptionsCollector(
            chain_exceptions=cfg.chain_exceptions,
            use_html_var_dumper=cfg.use_html_var_dumper,
            **shared,
        )
        if cfg.collect_warnings:
            exceptions.collect_warnings()

        for collector in (timeline, messages, queries, exceptions, ObjectCountCollector(**shared)):
            bar.add_collector(collector)
        return bar

    # ----- Registry -----

    @property
    def config(self) -> TabbyConfig:
        return self._config

    @property
    def request_id(self) -> str:
        return self._request_id

    @property
    def storage(self) -> FileStorage | None:
        return self._storage

    @property
    def links(self) -> EditorLinks:
        return self._links

    def add_collector(self, collector: Collector) -> None:
        """Register a collector under its name.

        Raises:
            CollectorError: If a collector with the same name exists.

        """
        if collector.name == "__meta":
            msg = "'__meta' is a reserved collector name"
            raise CollectorError(msg)
        if collector.name in self._collectors:
            msg = f"{collector.name!r} is already a registered collector"
            raise CollectorError(msg)
        self._collectors[collector.name] = collector

    def has_collector(self, name: str) -> bool:
        return name in self._collectors

    def get_collector(self, name: str) -> Collector:
        """Return the collector registered as ``name``.

        Raises:
            CollectorError: If no such collector exists.

        """
        try:
            return self._collectors[name]
        except KeyError:
            msg = f"{name!r} is not a registered collector"
            raise CollectorError(msg) from None

    __getitem__ = get_collector

    def __contains__(self, name: object) -> bool:
        return name in self._collectors

    @property
    def collectors(self) -> dict[str, Collector]:
        return dict(self._collectors)

    # ----- Typed accessors -----

    def _typed[T](self, name: str, kind: type[T]) -> T:
        collector = self.get_collector(name)
        if not isinstance(collector, kind):
            msg = f"Collector {name!r} is a {type(collector).__name__}, not a {kind.__name__}"
            raise CollectorError(msg)
        return collector

    @property
    def messages(self) -> MessagesCollector:
        return self._typed("messages", MessagesCollector)

    @property
    def queries(self) -> QueryCollector:
        return self._typed("queries", QueryCollector)

    @property
    def timer(self) -> TimeCollector:
        return self._typed("time", TimeCollector)

    @property
    def exceptions(self) -> ExceptionsCollector:
        return self._typed("exceptions", ExceptionsCollector)

    @property
    def counter(self) -> ObjectCountCollector:
        return self._typed("counter", ObjectCountCollector)

    # ----- Settings that span collectors -----

    def set_editor(self, editor: str, replacements: Mapping[str, str] | None = None) -> bool:
        """Switch origin links to ``editor`` for every collector."""
        if replacements:
            self._links.add_replacements(replacements)
        return self._links.set_editor(editor)

    def enable_file_traces(self, enabled: bool = True) -> None:
        """Toggle origin resolution for queries and messages."""
        if "queries" in self._collectors:
            limit = self._config.source_limit or DEFAULT_SOURCE_LIMIT
            self.queries.find_source = limit if enabled else False
        if "messages" in self._collectors:
            self.messages.collect_file_trace(enabled)

    # ----- Collection -----

    def collect(self, **meta: Any) -> dict[str, Any]:
        """Collect every snapshot into a single dataset.

        A collector that raises is reported as ``{"error": ...}`` instead of
        failing the whole dataset.

        """
        now = self._clock()
        data: dict[str, Any] = {
            "__meta": {
                "id": self._request_id,
                "datetime": dt.datetime.fromtimestamp(now).isoformat(sep=" ", timespec="seconds"),
                "utime": now,
                **meta,
            }
        }
        for name, collector in self._collectors.items():
            data[name] = self._safe_collect(name, collector)
        self._data = data
        return data

    def _safe_collect(self, name: str, collector: Collector) -> Snapshot:
        try:
            return collector.collect()
        except Exception as exc:
            print(f"  [tabby] collector {name!r} failed: {exc!r}", file=sys.stderr)
            return {"error": f"{type(exc).__name__}: {exc}"}

    def get_data(self) -> dict[str, Any]:
        """The last collected dataset, collecting now if needed."""
        if self._data is None:
            return self.collect()
        return self._data

    def save(self, **meta: Any) -> dict[str, Any]:
        """Collect and write the dataset to storage (if configured).

        Raises:
            StorageError: If the storage backend cannot write the dataset.

        """
        data = self.collect(**meta)
        if self._storage is not None:
            self._storage.save(self._request_id, data)
        return data

    def close(self) -> None:
        """Release process-wide hooks installed for this request."""
        if "exceptions" in self._collectors:
            self.exceptions.restore_warnings()
        if "time" in self._collectors:
            self.timer.finish()

    def summary(self) -> str:
        """One-line description of the collected data."""
        data = self.get_data()
        meta = data["__meta"]
        parts: list[str] = []
        queries = data.get("queries") or {}
        if queries.get("nb_statements"):
            parts.append(
                f"{queries['nb_statements']} queries ({queries['accumulated_duration_str']})"
            )
        messages = data.get("messages") or {}
        if messages.get("count"):
            parts.append(f"{messages['count']} messages")
        exceptions = data.get("exceptions") or {}
        if exceptions.get("count"):
            parts.append(f"{exceptions['count']} exceptions")
        request = " ".join(str(meta[k]) for k in ("method", "uri") if meta.get(k))
        details = ", ".join(parts) or "nothing collected"
        return f"  [tabby] {request or '-'} -> {details} [{self._request_id}]"
