"""Data formatting helpers shared by every collector.

Turns arbitrary values, durations, byte counts, source locations and SQL
bindings into the short strings the toolbar displays.
"""

from __future__ import annotations

import dataclasses
import html
import json
import math
import os
import pprint
import re
from collections.abc import Mapping
from typing import Any

from tabby.collectors.frames import Frame

BINARY_MARKER = "[BINARY DATA]"

_QUOTE_TABLE = str.maketrans({
    "\\": "\\\\",
    "\x00": "\\0",
    "\n": "\\n",
    "\r": "\\r",
    "'": "\\'",
    '"': '\\"',
    "\x1a": "\\Z",
})

# A complete single-quoted literal, or a doubled placeholder outside one.
_DOUBLE_PLACEHOLDER = re.compile(r"'(?:[^'\\]|\\.)*'|\?\?", re.DOTALL)
_NEWLINE_RUN = re.compile(r"\s*\n\s*")

_BYTE_SUFFIXES = ("B", "KB", "MB", "GB", "TB")


def _num(value: float) -> str:
    """Render a rounded number without a trailing ``.0``."""
    if float(value).is_integer():
        return str(int(value))
    return repr(value)


class DataFormatter:
    """Formats values for display in the toolbar."""

    __slots__ = ("width",)

    def __init__(self, width: int = 100) -> None:
        self.width = width

    def format_var(self, data: Any) -> str:
        """Human-readable dump of any value (used for search and plain display)."""
        return pprint.pformat(data, indent=2, width=self.width, sort_dicts=False).strip()

    def format_duration(self, seconds: float) -> str:
        """Format a duration in seconds as μs, ms, or s."""
        if seconds < 0.001:
            return f"{_num(round(seconds * 1_000_000))}μs"
        if seconds < 0.1:
            return f"{_num(round(seconds * 1000, 2))}ms"
        if seconds < 1:
            return f"{_num(round(seconds * 1000))}ms"
        return f"{_num(round(seconds, 2))}s"

    def format_bytes(self, size: int | float | None, precision: int = 2) -> str:
        """Format a (possibly negative) byte count with a binary unit suffix."""
        if not size:
            return "0B"
        sign = "-" if size < 0 else ""
        size = abs(size)
        base = math.log(size) / math.log(1024)
        exponent = min(max(math.floor(base), 0), len(_BYTE_SUFFIXES) - 1)
        value = round(size / 1024**exponent, precision)
        return f"{sign}{_num(value)}{_BYTE_SUFFIXES[exponent]}"

    def format_class_name(self, obj: Any) -> str:
        """Qualified class name of an object (or of a class)."""
        cls = obj if isinstance(obj, type) else type(obj)
        if cls.__module__ in ("builtins", "__main__"):
            return cls.__qualname__
        return f"{cls.__module__}.{cls.__qualname__}"

    def format_sql(self, sql: str) -> str:
        """Collapse escaped ``??`` placeholders and strip whitespace around newlines."""
        sql = _DOUBLE_PLACEHOLDER.sub(
            lambda m: "?" if m.group(0) == "??" else m.group(0), sql
        )
        return _NEWLINE_RUN.sub("\n", sql).strip()

    def check_bindings(self, bindings: Any) -> Any:
        """Replace bindings that cannot be displayed as text.

        Non UTF-8 bytes become ``[BINARY DATA]``, nested sequences become a
        bracketed comma-joined list, mappings and other objects become JSON.
        Returns a new container of the same shape (list or dict).

        """
        if isinstance(bindings, Mapping):
            return {key: self._check_binding(value) for key, value in bindings.items()}
        return [self._check_binding(value) for value in bindings]

    def _check_binding(self, value: Any) -> Any:
        if isinstance(value, (bytes, bytearray, memoryview)):
            try:
                return bytes(value).decode("utf-8")
            except UnicodeDecodeError:
                return BINARY_MARKER
        if isinstance(value, str):
            try:
                value.encode("utf-8")
            except UnicodeEncodeError:
                return BINARY_MARKER
            return value
        if isinstance(value, (list, tuple)):
            items = self.check_bindings(value)
            return "[" + ",".join(_binding_text(item) for item in items) + "]"
        if value is None or isinstance(value, (bool, int, float)):
            return value
        return self._to_json(value)

    def _to_json(self, value: Any) -> str:
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            value = dataclasses.asdict(value)
        elif not isinstance(value, Mapping) and hasattr(value, "__dict__"):
            value = vars(value)
        try:
            return json.dumps(value, default=str, separators=(",", ":"))
        except (TypeError, ValueError):
            return str(value)

    def format_source(self, source: Frame | Mapping[str, Any] | None, short: bool = False) -> str:
        """Format a frame as ``[namespace::]name:line``."""
        if source is None:
            return ""
        if isinstance(source, Frame):
            source = source.to_dict()
        parts: list[str] = []
        if not short and source.get("namespace"):
            parts.append(f"{source['namespace']}::")
        name = source.get("name") or source.get("file") or ""
        parts.append(os.path.basename(name) if short else name)
        parts.append(f":{source.get('line') or 1}")
        return "".join(parts)

    def emulate_quote(self, value: Any) -> str:
        """Quote a value the way MySQL's real_escape_string would."""
        return "'" + str(value).translate(_QUOTE_TABLE) + "'"


def _binding_text(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


class HtmlVarDumper:
    """Renders values as escaped, collapsible HTML blocks."""

    __slots__ = ("_formatter",)

    def __init__(self, formatter: DataFormatter | None = None) -> None:
        self._formatter = formatter or DataFormatter()

    def render_var(self, data: Any, *, expanded: bool = False) -> str:
        """Render ``data`` as a ``<pre>`` block (compact unless ``expanded``)."""
        state = "tabby-dump-expanded" if expanded else "tabby-dump-compact"
        body = html.escape(self._formatter.format_var(data))
        return f'<pre class="tabby-dump {state}">{body}</pre>'
