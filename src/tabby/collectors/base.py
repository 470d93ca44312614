"""Collector protocols and the shared base class.

A collector accumulates domain events during one request and exposes a
JSON-serializable snapshot through ``collect()``.  Optional capabilities
(file traces) are expressed as runtime-checkable protocols rather than
probed by method name.
"""

from __future__ import annotations

import time
import tracemalloc
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from tabby.collectors.formatter import DataFormatter, HtmlVarDumper
from tabby.collectors.links import EditorLinks

if TYPE_CHECKING:
    from collections.abc import Callable

    from tabby._types import Snapshot


@runtime_checkable
class Collector(Protocol):
    """Anything a DebugBar can hold."""

    @property
    def name(self) -> str: ...

    def collect(self) -> Snapshot: ...


@runtime_checkable
class SupportsFileTrace(Protocol):
    """A collector that can attach origin file/line information to entries."""

    def collect_file_trace(self, enabled: bool = True) -> None: ...


def memory_usage() -> int:
    """Bytes currently allocated, as seen by tracemalloc (0 when not tracing)."""
    if tracemalloc.is_tracing():
        return tracemalloc.get_traced_memory()[0]
    return 0


class DataCollector:
    """Base class wiring the shared formatter, HTML dumper and editor links.

    Args:
        name: Key of this collector's snapshot in the combined dataset.
        formatter: Shared data formatter (a fresh one by default).
        links: Shared editor-link builder (links disabled by default).
        clock: Wall-clock source in seconds, replaceable in tests.

    """

    __slots__ = ("__weakref__", "_clock", "_formatter", "_links", "_name", "_var_dumper")

    def __init__(
        self,
        name: str,
        *,
        formatter: DataFormatter | None = None,
        links: EditorLinks | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._name = name
        self._formatter = formatter or DataFormatter()
        self._links = links or EditorLinks()
        self._var_dumper: HtmlVarDumper | None = None
        self._clock = clock

    @property
    def name(self) -> str:
        return self._name

    @property
    def formatter(self) -> DataFormatter:
        return self._formatter

    @property
    def links(self) -> EditorLinks:
        """Editor-link builder; shared between collectors of one DebugBar."""
        return self._links

    @links.setter
    def links(self, value: EditorLinks) -> None:
        self._links = value

    @property
    def var_dumper(self) -> HtmlVarDumper:
        if self._var_dumper is None:
            self._var_dumper = HtmlVarDumper(self._formatter)
        return self._var_dumper

    def collect(self) -> Snapshot:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"
