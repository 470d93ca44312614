"""SQL statement normalization and display rendering.

Statements are normalized once when recorded, then rendered for display
at collection time, optionally with their bindings embedded.

Placeholder detection is textual, not a SQL parser: a ``?`` or ``:name``
counts only when it sits outside a single-quoted literal.  A statement
with unbalanced quotes can therefore have its literal spans misdetected.
The rendered string is for display only and is never executed.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from tabby.collectors.formatter import DataFormatter

if TYPE_CHECKING:
    from tabby._types import Bindings

_COMMENT_LINE = re.compile(r"^\s*--")
_LITERAL = r"'(?:[^'\\]|\\.)*'"
# A single ``?`` that is not half of an escaped ``??``.
_POSITIONAL = re.compile(_LITERAL + r"|(?P<ph>(?<!\?)\?(?!\?))", re.DOTALL)


def normalize_statement(sql: str) -> str:
    """Normalize a statement for storage.

    Each line is trimmed, ``--`` comment lines become ``/* ... */`` so the
    statement survives being joined onto one line, blank lines are
    dropped, and the result ends with exactly one ``;``.  Idempotent.

    """
    lines: list[str] = []
    for line in str(sql).rstrip(" ;\t\n\r").split("\n"):
        if _COMMENT_LINE.match(line):
            lines.append("/* " + line.strip().lstrip(" -") + " */")
        else:
            stripped = line.strip()
            if stripped:
                lines.append(stripped)
    return " ".join(lines) + ";"


def _named_pattern(key: str) -> re.Pattern[str]:
    return re.compile(
        _LITERAL + r"|(?P<ph>(?<!:):" + re.escape(key) + r"(?!\w))", re.DOTALL
    )


def _substitute_first(pattern: re.Pattern[str], sql: str, value: str) -> str:
    """Replace the first placeholder outside quotes; literals are skipped."""
    for match in pattern.finditer(sql):
        if match.group("ph") is not None:
            return sql[: match.start()] + value + sql[match.end():]
    return sql


class SqlRenderer:
    """Renders recorded statements for display.

    Args:
        formatter: Formatter used for binding checks, quoting and cleanup.

    """

    __slots__ = ("_formatter",)

    def __init__(self, formatter: DataFormatter | None = None) -> None:
        self._formatter = formatter or DataFormatter()

    def render(
        self, sql: str, bindings: Bindings | None = None, embed_bindings: bool = False
    ) -> str:
        """Render ``sql`` for display, optionally embedding ``bindings``.

        Bindings are consumed left to right, one placeholder each.  Extra
        bindings are dropped and missing ones leave their placeholder in
        place.  Numbers are embedded literally; everything else is quoted.

        """
        if embed_bindings and bindings:
            checked = self._formatter.check_bindings(bindings)
            items = checked.items() if isinstance(checked, Mapping) else enumerate(checked)
            for key, value in items:
                pattern = (
                    _POSITIONAL
                    if isinstance(key, int)
                    else _named_pattern(str(key).lstrip(":"))
                )
                sql = _substitute_first(pattern, sql, self.quote(value))
        return self._formatter.format_sql(sql)

    def quote(self, value: Any) -> str:
        """Literal SQL text for a checked binding value."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "'1'" if value else "'0'"
        if isinstance(value, (int, float)):
            return repr(value)
        return self._formatter.emulate_quote(value)
