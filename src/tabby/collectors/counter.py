"""Object count collector — hit counts per class."""

from __future__ import annotations

import inspect
import time
from typing import TYPE_CHECKING, Any

from tabby.collectors.base import DataCollector

if TYPE_CHECKING:
    from collections.abc import Callable

    from tabby._types import Snapshot
    from tabby.collectors.formatter import DataFormatter
    from tabby.collectors.links import EditorLinks


class ObjectCountCollector(DataCollector):
    """Counts how often classes (or arbitrary labels) are hit."""

    __slots__ = ("_classes", "_counts", "_total")

    def __init__(
        self,
        name: str = "counter",
        *,
        formatter: DataFormatter | None = None,
        links: EditorLinks | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name, formatter=formatter, links=links, clock=clock)
        self._counts: dict[str, int] = {}
        self._classes: dict[str, type] = {}
        self._total = 0

    def count_class(self, cls: str | type | object, count: int = 1) -> None:
        """Add ``count`` hits for a class name, a class, or an instance's class."""
        if isinstance(cls, str):
            key = cls
        else:
            klass = cls if isinstance(cls, type) else type(cls)
            key = self._formatter.format_class_name(klass)
            self._classes[key] = klass
        self._counts[key] = self._counts.get(key, 0) + count
        self._total += count

    def collect(self) -> Snapshot:
        ranked = sorted(self._counts.items(), key=lambda item: item[1], reverse=True)
        data: dict[str, Any] = {}
        for key, value in ranked:
            link = self._class_link(key) if self._links.template else None
            data[key] = {"value": value, "origin_link": link} if link else value
        return {"data": data, "count": self._total, "is_counter": True}

    def _class_link(self, key: str) -> dict[str, Any] | None:
        klass = self._classes.get(key)
        if klass is None:
            return None
        try:
            source = inspect.getsourcefile(klass)
        except TypeError:
            return None
        return self._links.link(source) if source else None
