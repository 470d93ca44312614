"""Exceptions collector — exceptions and warnings raised during a request.

Exceptions are stored as-is and formatted at collection time: type,
message, location, formatted traceback, and the source lines around the
failing line.  Warnings issued through ``warnings.warn`` can be routed here
too, as pre-formatted entries.

Thread Safety:
    ``warnings.showwarning`` is process-global, so a single hook is
    installed while any collector is collecting and each warning goes to
    the collector active in the current context (task or thread).  Hook
    installation is protected by a ``threading.Lock``.

"""

from __future__ import annotations

import linecache
import sys
import threading
import time
import traceback
import warnings
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from tabby.collectors.base import DataCollector

if TYPE_CHECKING:
    from collections.abc import Callable

    from tabby._types import Snapshot
    from tabby.collectors.formatter import DataFormatter
    from tabby.collectors.links import EditorLinks

# Lines shown around the failing line (3 before, the line, 3 after).
_CONTEXT_BEFORE = 3
_CONTEXT_LINES = 7

_warning_sink: ContextVar[ExceptionsCollector | None] = ContextVar(
    "tabby_warning_sink", default=None
)
_hook_lock = threading.Lock()
_hook_users = 0
_saved_showwarning: Callable[..., Any] | None = None


def _route_warning(
    message: Warning | str,
    category: type[Warning],
    filename: str,
    lineno: int,
    file: Any = None,
    line: str | None = None,
) -> None:
    collector = _warning_sink.get()
    if collector is not None and collector._collecting:
        collector._record_warning(message, category, filename, lineno)
        return
    showwarning = _saved_showwarning
    if showwarning is None:
        sys.stderr.write(warnings.formatwarning(message, category, filename, lineno, line))
    else:
        showwarning(message, category, filename, lineno, file, line)


def _install_hook() -> None:
    global _hook_users, _saved_showwarning
    with _hook_lock:
        if _hook_users == 0 and warnings.showwarning is not _route_warning:
            _saved_showwarning = warnings.showwarning
            warnings.showwarning = _route_warning
        _hook_users += 1


def _uninstall_hook() -> None:
    global _hook_users, _saved_showwarning
    with _hook_lock:
        _hook_users = max(_hook_users - 1, 0)
        if _hook_users:
            return
        # Leave a hook installed after ours in place.
        if warnings.showwarning is _route_warning and _saved_showwarning is not None:
            warnings.showwarning = _saved_showwarning
        _saved_showwarning = None


def error_location(exc: BaseException) -> tuple[str, int]:
    """Filename and line number of the innermost traceback frame."""
    tb = exc.__traceback__
    if tb is None:
        return "", 0
    while tb.tb_next is not None:
        tb = tb.tb_next
    return tb.tb_frame.f_code.co_filename, tb.tb_lineno


class ExceptionsCollector(DataCollector):
    """Collects exceptions (and optionally warnings) for one request.

    Args:
        chain_exceptions: Also record the exception's cause/context chain.
        use_html_var_dumper: Render the traceback as HTML instead of text.

    """

    __slots__ = ("_collecting", "_entries", "chain_exceptions", "use_html_var_dumper")

    def __init__(
        self,
        *,
        name: str = "exceptions",
        chain_exceptions: bool = False,
        use_html_var_dumper: bool = False,
        formatter: DataFormatter | None = None,
        links: EditorLinks | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name, formatter=formatter, links=links, clock=clock)
        self.chain_exceptions = chain_exceptions
        self.use_html_var_dumper = use_html_var_dumper
        self._entries: list[BaseException | dict[str, Any]] = []
        self._collecting = False

    def add_throwable(self, exc: BaseException) -> None:
        """Record an exception (and its chain when ``chain_exceptions`` is set)."""
        seen: set[int] = set()
        current: BaseException | None = exc
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            self._entries.append(current)
            if not self.chain_exceptions:
                break
            current = _previous(current)

    @property
    def exceptions(self) -> tuple[BaseException | dict[str, Any], ...]:
        return tuple(self._entries)

    # ----- Warnings -----

    def collect_warnings(self) -> None:
        """Route ``warnings.warn`` output in the current context here until restored."""
        if self._collecting:
            return
        _install_hook()
        self._collecting = True
        _warning_sink.set(self)

    def restore_warnings(self) -> None:
        """Stop receiving warnings; the last active collector reinstalls the previous hook."""
        if not self._collecting:
            return
        self._collecting = False
        if _warning_sink.get() is self:
            _warning_sink.set(None)
        _uninstall_hook()

    def _record_warning(
        self,
        message: Warning | str,
        category: type[Warning],
        filename: str,
        lineno: int,
    ) -> None:
        self._entries.append({
            "type": category.__name__,
            "message": str(message),
            "code": 0,
            "file": self._links.normalize_file_path(filename),
            "line": lineno,
            "stack_trace": None,
            "stack_trace_html": None,
            "surrounding_lines": None,
            "origin_link": self._links.link(filename, lineno) if filename else None,
        })

    # ----- Snapshot -----

    def format_throwable_data(self, exc: BaseException | dict[str, Any]) -> dict[str, Any]:
        """Serializable description of a recorded exception."""
        if isinstance(exc, dict):
            return exc

        filename, lineno = error_location(exc)
        lines = linecache.getlines(filename) if filename else []
        if lines:
            start = max(lineno - 1 - _CONTEXT_BEFORE, 0)
            surrounding = lines[start:start + _CONTEXT_LINES]
        else:
            normalized = self._links.normalize_file_path(filename)
            surrounding = [f"Cannot open the file ({normalized}) in which the exception occurred"]

        trace_html = None
        if self.use_html_var_dumper:
            trace_html = self.var_dumper.render_var(self.format_trace(exc))

        return {
            "type": self._formatter.format_class_name(exc),
            "message": str(exc),
            "code": _code(exc),
            "file": self._links.normalize_file_path(filename),
            "line": lineno,
            "stack_trace": None if trace_html else self.format_trace_as_string(exc),
            "stack_trace_html": trace_html,
            "surrounding_lines": surrounding,
            "origin_link": self._links.link(filename, lineno) if filename else None,
        }

    def format_trace(self, exc: BaseException) -> list[dict[str, Any]]:
        """Traceback frames as dicts, outermost first."""
        return [
            {
                "file": self._links.normalize_file_path(fs.filename)
                if self._links.replacements else fs.filename,
                "line": fs.lineno,
                "function": fs.name,
                "code": fs.line,
            }
            for fs in traceback.extract_tb(exc.__traceback__)
        ]

    def format_trace_as_string(self, exc: BaseException) -> str:
        """Formatted traceback, with server paths shortened when replacements are set."""
        summary = traceback.extract_tb(exc.__traceback__)
        if self._links.replacements:
            for fs in summary:
                fs.filename = self._links.normalize_file_path(fs.filename)
        return "".join(summary.format()).rstrip("\n")

    def collect(self) -> Snapshot:
        return {
            "count": len(self._entries),
            "exceptions": [self.format_throwable_data(e) for e in self._entries],
        }


def _previous(exc: BaseException) -> BaseException | None:
    if exc.__cause__ is not None:
        return exc.__cause__
    if exc.__suppress_context__:
        return None
    return exc.__context__


def _code(exc: BaseException) -> int:
    code = getattr(exc, "errno", None)
    return code if isinstance(code, int) else 0
