"""Query collector — records SQL statements and transaction events.

Events are grouped per connection in the order they were recorded, and
the snapshot merges all connections by start time.  Each query carries
its duration, memory delta, bindings and the application frames it
originated from.  Timing comes either from an explicit value
or from the single pending timer started with ``start_query_measure()``.

Durations are in seconds throughout; a driver reporting milliseconds
must divide by 1000 before calling ``add_query``.

Thread Safety:
    None.  A collector belongs to one request and is used from one
    thread; starting a second timer before recording silently replaces
    the first.

"""

from __future__ import annotations

import os
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tabby.collectors.base import DataCollector, memory_usage
from tabby.collectors.frames import (
    Frame,
    capture_stack,
    is_excluded,
    relevant_frames,
)
from tabby.collectors.sql import SqlRenderer, normalize_statement
from tabby.config import DEFAULT_EXCLUDED_PATHS

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from tabby._types import Bindings, QueryKind, Snapshot
    from tabby.collectors.formatter import DataFormatter
    from tabby.collectors.links import EditorLinks
    from tabby.collectors.timeline import TimeCollector

DEFAULT_CONNECTION = "default"
_CORE_KEYS = frozenset({
    "sql", "type", "start", "duration", "memory", "connection", "driver", "backtrace",
    "bindings", "duration_str", "memory_str", "filename", "origin_link",
})


@dataclass(frozen=True, slots=True)
class QueryEvent:
    """A recorded statement or transaction marker.

    Attributes:
        sql: Normalized statement (or the verbatim transaction label).
        type: ``query`` or ``transaction``.
        connection: Connection name the event was recorded on.
        start: Wall-clock start in seconds.
        duration: Duration in seconds (externally supplied values are kept as-is).
        memory: Memory delta in bytes.
        bindings: Statement bindings, positional or named.
        backtrace: Origin frames, innermost first.
        driver: Database driver name, if known.
        extra: Additional caller metadata.

    """

    sql: str
    type: QueryKind
    connection: str
    start: float
    duration: float = 0.0
    memory: int = 0
    bindings: Bindings = ()
    backtrace: tuple[Frame, ...] = ()
    driver: str = ""
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class QueryTimer:
    """Pending measurement started before a query runs."""

    start: float
    memory: int


class QueryCollector(DataCollector):
    """Records database activity for one request.

    Args:
        exclude_paths: Path substrings skipped when resolving origins.
        find_source: Resolve origin frames (``True`` = 5 frames, int = that many).
        render_sql_with_params: Embed bindings into the displayed SQL.
        duration_background: Add ``start_percent`` / ``width_percent`` to statements.
        timeline: Optional timeline receiving one measure per query.
        backtrace_depth: Frames captured before filtering.

    """

    __slots__ = (
        "_connections",
        "_query_count",
        "_renderer",
        "_timer",
        "_transaction_count",
        "backtrace_depth",
        "duration_background",
        "exclude_paths",
        "find_source",
        "render_sql_with_params",
        "timeline",
    )

    def __init__(
        self,
        *,
        name: str = "queries",
        exclude_paths: Iterable[str] = DEFAULT_EXCLUDED_PATHS,
        find_source: bool | int = False,
        render_sql_with_params: bool = False,
        duration_background: bool = False,
        timeline: TimeCollector | None = None,
        backtrace_depth: int = 40,
        formatter: DataFormatter | None = None,
        links: EditorLinks | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name, formatter=formatter, links=links, clock=clock)
        self.exclude_paths = tuple(exclude_paths)
        self.find_source = find_source
        self.render_sql_with_params = render_sql_with_params
        self.duration_background = duration_background
        self.timeline = timeline
        self.backtrace_depth = backtrace_depth
        self._renderer = SqlRenderer(self._formatter)
        self._connections: dict[str, list[QueryEvent]] = {}
        self._query_count = 0
        self._transaction_count = 0
        self._timer: QueryTimer | None = None

    # ----- Recording -----

    def start_query_measure(self) -> QueryTimer:
        """Start timing the next query (replaces any pending timer)."""
        self._timer = QueryTimer(start=self._clock(), memory=memory_usage())
        return self._timer

    def add_query(
        self,
        sql: str,
        bindings: Bindings = (),
        *,
        connection: str | None = None,
        duration: float | None = None,
        memory: int | None = None,
        driver: str = "",
        **metadata: Any,
    ) -> QueryEvent:
        """Record an executed statement.

        Without an explicit ``duration`` the pending timer is used, or 0
        when none was started.  The pending timer is consumed either way.

        """
        name = self._connection_name(connection, metadata)
        self._query_count += 1
        statement = normalize_statement(sql)

        end = self._clock()
        timer, self._timer = self._timer, None
        if duration is None:
            duration = end - timer.start if timer is not None else 0.0
        if memory is None:
            memory = memory_usage() - timer.memory if timer is not None else 0
        start = end - duration

        event = QueryEvent(
            sql=statement,
            type="query",
            connection=name,
            start=start,
            duration=duration,
            memory=memory,
            bindings=bindings,
            backtrace=self._find_source(),
            driver=driver,
            extra=metadata,
        )
        self._connections[name].append(event)

        if self.timeline is not None:
            self.timeline.add_measure(
                statement[:100], start, end, {"memoryUsage": memory}, "db"
            )
        return event

    def add_transaction_event(
        self,
        event: str,
        *,
        connection: str | None = None,
        driver: str = "",
        **metadata: Any,
    ) -> QueryEvent:
        """Record a transaction marker (``BEGIN``, ``COMMIT``, a comment, ...)."""
        name = self._connection_name(connection, metadata)
        self._transaction_count += 1
        recorded = QueryEvent(
            sql=event,
            type="transaction",
            connection=name,
            start=self._clock(),
            backtrace=self._find_source(),
            driver=driver,
            extra=metadata,
        )
        self._connections[name].append(recorded)
        return recorded

    def add_comment(self, comment: str, **metadata: Any) -> QueryEvent:
        """Record a free-form comment line in the statement list."""
        return self.add_transaction_event(f"-- {comment}", **{"comment": True, **metadata})

    def reset(self) -> None:
        """Forget all recorded events and any pending timer; keep settings."""
        self._connections = {}
        self._query_count = 0
        self._transaction_count = 0
        self._timer = None

    @property
    def connections(self) -> dict[str, tuple[QueryEvent, ...]]:
        return {name: tuple(events) for name, events in self._connections.items()}

    @property
    def query_count(self) -> int:
        return self._query_count

    @property
    def transaction_count(self) -> int:
        return self._transaction_count

    def _connection_name(self, connection: str | None, metadata: Mapping[str, Any]) -> str:
        name = connection or metadata.get("db") or DEFAULT_CONNECTION
        self._connections.setdefault(name, [])
        return name

    def _find_source(self) -> tuple[Frame, ...]:
        if not self.find_source:
            return ()
        try:
            stack = capture_stack(skip=1, depth=self.backtrace_depth)
            return relevant_frames(stack, self.exclude_paths, self._source_limit())
        except Exception:
            return ()

    def _source_limit(self) -> int:
        if self.find_source is True:
            return 5
        return int(self.find_source)

    # ----- Snapshot -----

    def render_sql(self, event: QueryEvent) -> str:
        """Display form of a recorded event's statement."""
        embed = event.type == "query" and self.render_sql_with_params
        return self._renderer.render(event.sql, event.bindings, embed)

    def collect(self) -> Snapshot:
        """Snapshot of all visible statements across connections, ordered by start."""
        total_duration = 0.0
        total_memory = 0
        statements: list[dict[str, Any]] = []

        # Stable: equal starts keep connection registration order.
        events = sorted(
            (event for recorded in self._connections.values() for event in recorded),
            key=lambda event: event.start,
        )
        for event in events:
            origin = event.backtrace[0] if event.backtrace else None
            if event.type != "transaction" and origin and origin.file:
                if is_excluded(origin.file, self.exclude_paths):
                    continue

            total_duration += event.duration
            total_memory += event.memory
            statements.append(self._statement(event))

        if not statements:
            return {}

        if self.duration_background and total_duration > 0:
            distribute_durations(statements, total_duration)

        return {
            "nb_statements": self._query_count,
            "nb_visible_statements": len(statements),
            "nb_excluded_statements": self._query_count + self._transaction_count,
            "nb_failed_statements": 0,
            "accumulated_duration": total_duration,
            "accumulated_duration_str": self._formatter.format_duration(total_duration),
            "memory_usage": total_memory,
            "memory_usage_str": (
                self._formatter.format_bytes(total_memory) if total_memory else None
            ),
            "statements": statements,
        }

    def _statement(self, event: QueryEvent) -> dict[str, Any]:
        backtrace = [
            frame.to_dict(self._links.normalize_file_path(frame.file))
            for frame in event.backtrace
        ]
        origin = event.backtrace[0] if event.backtrace else None
        statement = {k: v for k, v in event.extra.items() if k not in _CORE_KEYS}
        statement.update({
            "sql": self.render_sql(event),
            "type": event.type,
            "start": event.start,
            "duration": event.duration,
            "memory": event.memory,
            "connection": event.connection,
            "driver": event.driver,
            "bindings": _serializable_bindings(event.bindings),
            "backtrace": backtrace,
            "duration_str": (
                "" if event.type == "transaction"
                else self._formatter.format_duration(event.duration)
            ),
            "memory_str": self._formatter.format_bytes(event.memory) if event.memory else None,
            "filename": (
                os.path.basename(self._formatter.format_source(backtrace[0]))
                if backtrace else None
            ),
            "origin_link": self._links.link(origin.file, origin.line) if origin else None,
        })
        return statement


def distribute_durations(statements: list[dict[str, Any]], total_duration: float) -> None:
    """Annotate statements with cumulative Gantt-style percentages, in place.

    Statements without a duration get no percent fields and do not
    advance the running start.

    """
    start_percent = 0.0
    for statement in statements:
        duration = statement.get("duration")
        if not duration:
            continue
        width_percent = duration / total_duration * 100
        statement["start_percent"] = round(start_percent, 3)
        statement["width_percent"] = round(width_percent, 3)
        start_percent += width_percent


def _serializable_bindings(bindings: Bindings) -> Any:
    if isinstance(bindings, Mapping):
        return {str(k): _plain(v) for k, v in bindings.items()}
    return [_plain(v) for v in bindings]


def _plain(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return repr(bytes(value))
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return str(value)
