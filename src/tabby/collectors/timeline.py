"""Timeline collector — named measures across the request.

Measures are (label, start, end) spans relative to the request start.
Queries add one measure each when a timeline is attached to the query
collector, so database time shows up next to application measures.
"""

from __future__ import annotations

import itertools
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tabby._errors import CollectorError
from tabby.collectors.base import DataCollector, memory_usage

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from tabby._types import Snapshot
    from tabby.collectors.formatter import DataFormatter
    from tabby.collectors.links import EditorLinks


_measure_ids = itertools.count()


@dataclass(frozen=True, slots=True)
class Measure:
    """A completed timeline span.

    Attributes:
        label: Display label.
        start: Wall-clock start in seconds.
        end: Wall-clock end in seconds.
        params: Free-form details (``memoryUsage`` for queries).
        collector: Name of the collector that produced the span, if any.

    """

    label: str
    start: float
    end: float
    params: dict[str, Any] = field(default_factory=dict)
    collector: str | None = None

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(slots=True)
class _PendingMeasure:
    label: str
    start: float
    memory: int
    collector: str | None


class TimeCollector(DataCollector):
    """Collects timeline measures for one request.

    Args:
        request_start: Request start time; defaults to construction time.

    """

    __slots__ = ("_measures", "_request_end", "_request_start", "_started")

    def __init__(
        self,
        request_start: float | None = None,
        *,
        name: str = "time",
        formatter: DataFormatter | None = None,
        links: EditorLinks | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name, formatter=formatter, links=links, clock=clock)
        self._request_start = request_start if request_start is not None else clock()
        self._request_end: float | None = None
        self._started: dict[str, _PendingMeasure] = {}
        self._measures: list[Measure] = []

    @property
    def request_start(self) -> float:
        return self._request_start

    def start_measure(
        self, name: str, label: str | None = None, collector: str | None = None
    ) -> None:
        """Start a named measure; restarting a name overwrites it."""
        self._started[name] = _PendingMeasure(
            label=label or name,
            start=self._clock(),
            memory=memory_usage(),
            collector=collector,
        )

    def has_started_measure(self, name: str) -> bool:
        return name in self._started

    def stop_measure(self, name: str, params: dict[str, Any] | None = None) -> Measure:
        """Stop a named measure and record it.

        Raises:
            CollectorError: If no measure with that name was started.

        """
        pending = self._started.pop(name, None)
        if pending is None:
            msg = f"Failed stopping measure {name!r} because it hasn't been started"
            raise CollectorError(msg)
        details = dict(params or {})
        details.setdefault("memoryUsage", memory_usage() - pending.memory)
        return self.add_measure(
            pending.label, pending.start, self._clock(), details, pending.collector
        )

    def add_measure(
        self,
        label: str,
        start: float,
        end: float,
        params: dict[str, Any] | None = None,
        collector: str | None = None,
    ) -> Measure:
        """Record an already-completed span."""
        measure = Measure(
            label=label, start=start, end=end, params=dict(params or {}), collector=collector
        )
        self._measures.append(measure)
        return measure

    @contextmanager
    def measure(self, label: str, collector: str | None = None) -> Iterator[None]:
        """Measure the enclosed block (recorded even if it raises)."""
        name = f"{label}@{next(_measure_ids)}"
        self.start_measure(name, label, collector)
        try:
            yield
        finally:
            self.stop_measure(name)

    @property
    def measures(self) -> tuple[Measure, ...]:
        return tuple(self._measures)

    def collect(self) -> Snapshot:
        """Snapshot of the timeline.

        Measures still running are reported as ending now but stay
        running, so a later ``stop_measure`` still records them.

        """
        now = self._clock()
        end = self._request_end if self._request_end is not None else now
        running = [
            Measure(
                label=pending.label,
                start=pending.start,
                end=now,
                params={"memoryUsage": memory_usage() - pending.memory},
                collector=pending.collector,
            )
            for pending in self._started.values()
        ]
        measures = sorted([*self._measures, *running], key=lambda m: m.start)
        duration = end - self._request_start
        return {
            "start": self._request_start,
            "end": end,
            "duration": duration,
            "duration_str": self._formatter.format_duration(duration),
            "measures": [
                {
                    "label": m.label,
                    "start": m.start,
                    "relative_start": m.start - self._request_start,
                    "end": m.end,
                    "relative_end": m.end - self._request_start,
                    "duration": m.duration,
                    "duration_str": self._formatter.format_duration(m.duration),
                    "params": m.params,
                    "collector": m.collector,
                }
                for m in measures
            ],
        }

    def finish(self) -> None:
        """Freeze the request end time."""
        self._request_end = self._clock()
