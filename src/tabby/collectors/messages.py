"""Messages collector — a PSR-3 style log shown in the toolbar.

Messages can be strings, pre-formatted HTML, or arbitrary values (dumped
to text for searching and optionally to HTML for display).  A collector
can aggregate other message sources: their entries are pulled when the
log is read, tagged with the source's name, and merged into a single
stable, time-ordered sequence.

Aggregated sources are held by weak reference.  The collector never
owns them and never copies their entries at registration time, so a read
always reflects the sources' latest state.

"""

from __future__ import annotations

import dataclasses
import datetime as dt
import enum
import json
import logging
import os
import re
import time
import weakref
from dataclasses import dataclass
from html import escape
from html.parser import HTMLParser
from typing import TYPE_CHECKING, Any, Protocol

from tabby._errors import CollectorError
from tabby.collectors.base import DataCollector, SupportsFileTrace
from tabby.collectors.frames import capture_stack, first_relevant_frame
from tabby.config import DEFAULT_EXCLUDED_PATHS

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from tabby._types import Level, Snapshot
    from tabby.collectors.formatter import DataFormatter
    from tabby.collectors.links import EditorLinks

LEVELS: tuple[Level, ...] = (
    "emergency", "alert", "critical", "error", "warning", "notice", "info", "debug",
)

_PLACEHOLDER = re.compile(r"\{([^{}\s]+)\}")


@dataclass(frozen=True, slots=True)
class MessageEntry:
    """A logged message.

    Attributes:
        message: Text form (formatted dump for non-string messages).
        message_html: Rich HTML form, if any.
        is_string: False when the original message was not a plain string.
        label: Level or free-form label.
        time: Wall-clock timestamp in seconds.
        filename: ``file.py:line`` of the origin, when file traces are on.
        origin_link: Editor link for the origin.
        collector: Name of the aggregated source this entry came from.

    """

    message: str
    message_html: str | None
    is_string: bool
    label: str
    time: float
    filename: str | None = None
    origin_link: dict[str, Any] | None = None
    collector: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        if self.collector is None:
            del data["collector"]
        return data


class MessageSource(Protocol):
    """Anything whose messages can be aggregated into another log."""

    @property
    def name(self) -> str: ...

    def get_messages(self) -> list[MessageEntry]: ...


# ---------------------------------------------------------------------------
# HTML sanitizing
# ---------------------------------------------------------------------------

ALLOWED_TAGS = frozenset({"b", "i", "p", "a", "ul", "ol", "li", "strong", "em", "span", "div"})
_DROP_CONTENT_TAGS = frozenset({"script", "style"})


class _Sanitizer(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._dropping = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in _DROP_CONTENT_TAGS:
            self._dropping += 1
            return
        if tag in ALLOWED_TAGS and not self._dropping:
            self.parts.append(f"<{tag}{_clean_attrs(attrs)}>")

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in ALLOWED_TAGS and not self._dropping:
            self.parts.append(f"<{tag}{_clean_attrs(attrs)}>")

    def handle_endtag(self, tag: str) -> None:
        if tag in _DROP_CONTENT_TAGS:
            self._dropping = max(0, self._dropping - 1)
            return
        if tag in ALLOWED_TAGS and not self._dropping:
            self.parts.append(f"</{tag}>")

    def handle_data(self, data: str) -> None:
        if not self._dropping:
            self.parts.append(escape(data, quote=False))


def _clean_attrs(attrs: list[tuple[str, str | None]]) -> str:
    cleaned: list[str] = []
    for name, value in attrs:
        if name.startswith("on"):
            continue
        if name == "href" and (value or "").strip().lower().startswith("javascript:"):
            value = "#"
        if value is None:
            cleaned.append(f" {name}")
        else:
            cleaned.append(f' {name}="{escape(value)}"')
    return "".join(cleaned)


def sanitize_html(markup: str) -> str:
    """Keep inline formatting tags only; strip event handlers and ``javascript:`` links."""
    parser = _Sanitizer()
    parser.feed(markup)
    parser.close()
    return "".join(parser.parts)


# ---------------------------------------------------------------------------
# Interpolation
# ---------------------------------------------------------------------------


def _has_custom_str(value: object) -> bool:
    return type(value).__str__ is not object.__str__


def stringify_context_value(value: Any, formatter: DataFormatter) -> str:
    """Text substituted for a ``{key}`` placeholder."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    if isinstance(value, enum.Enum):
        inner = value.value
        if isinstance(inner, (str, int, float)):
            return str(inner)
        return value.name
    if isinstance(value, (str, int, float)):
        return str(value)
    if isinstance(value, (dt.datetime, dt.time)):
        return value.isoformat(timespec="microseconds")
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time()).isoformat(timespec="microseconds")
    if isinstance(value, (list, tuple, dict)):
        try:
            return "array" + json.dumps(value, separators=(",", ":"))
        except (TypeError, ValueError):
            return "null"
    if isinstance(value, (set, frozenset, bytes)) or callable(value):
        return f"[{type(value).__name__}]"
    if _has_custom_str(value):
        return str(value)
    return f"[object {formatter.format_class_name(value)}]"


def interpolate(message: str, context: Mapping[str, Any] | None, formatter: DataFormatter) -> str:
    """Replace ``{key}`` placeholders with context values.

    Placeholders without a matching key are left exactly as written.

    """
    if not context:
        return message

    def replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in context:
            return match.group(0)
        return stringify_context_value(context[key], formatter)

    return _PLACEHOLDER.sub(replace, message)


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------


class MessagesCollector(DataCollector):
    """Collects log messages for one request.

    Args:
        name: Collector name (also used to tag entries when aggregated).
        exclude_paths: Path substrings skipped when resolving origins.
        use_html_var_dumper: Render non-string messages as HTML too.
        backtrace_depth: Frames captured per message when file traces are on.

    """

    __slots__ = (
        "_aggregates",
        "_collect_file",
        "_merging",
        "_messages",
        "backtrace_depth",
        "exclude_paths",
        "use_html_var_dumper",
    )

    def __init__(
        self,
        name: str = "messages",
        *,
        exclude_paths: Iterable[str] = DEFAULT_EXCLUDED_PATHS,
        use_html_var_dumper: bool = False,
        backtrace_depth: int = 40,
        formatter: DataFormatter | None = None,
        links: EditorLinks | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name, formatter=formatter, links=links, clock=clock)
        self.exclude_paths = tuple(exclude_paths)
        self.use_html_var_dumper = use_html_var_dumper
        self.backtrace_depth = backtrace_depth
        self._collect_file = False
        self._merging = False
        self._messages: list[MessageEntry] = []
        self._aggregates: list[weakref.ReferenceType[MessageSource]] = []

    def collect_file_trace(self, enabled: bool = True) -> None:
        """Attach the origin file/line to every subsequent message."""
        self._collect_file = enabled

    @property
    def collects_file_trace(self) -> bool:
        return self._collect_file

    def add_message(
        self, message: Any, label: str = "info", is_string: bool = True
    ) -> MessageEntry:
        """Append a message.

        Args:
            message: A string, or any value (dumped to text and optionally HTML).
            label: Level or free-form label.
            is_string: Pass False for a string of trusted-looking HTML; it is
                sanitized and stored as the HTML form.

        """
        text: str
        html: str | None = None
        if not isinstance(message, str):
            text = self._formatter.format_var(message)
            if self.use_html_var_dumper:
                html = self.var_dumper.render_var(message)
            is_string = False
        else:
            text = message
            if not is_string:
                html = sanitize_html(message)

        filename = None
        origin_link = None
        if self._collect_file:
            frame = None
            try:
                frame = first_relevant_frame(
                    capture_stack(skip=1, depth=self.backtrace_depth), self.exclude_paths
                )
            except Exception:
                frame = None
            if frame is not None and frame.file:
                filename = f"{os.path.basename(frame.file)}:{frame.line or 1}"
                origin_link = self._links.link(frame.file, frame.line)

        entry = MessageEntry(
            message=text,
            message_html=html,
            is_string=is_string,
            label=label,
            time=self._clock(),
            filename=filename,
            origin_link=origin_link,
        )
        self._messages.append(entry)
        return entry

    def interpolate(self, message: str, context: Mapping[str, Any] | None = None) -> str:
        return interpolate(message, context, self._formatter)

    def log(self, level: str, message: Any, context: Mapping[str, Any] | None = None) -> None:
        """Log ``message`` at ``level``, interpolating ``{key}`` placeholders."""
        if isinstance(message, str):
            message = self.interpolate(message, context)
        self.add_message(message, level)

    def emergency(self, message: Any, context: Mapping[str, Any] | None = None) -> None:
        self.log("emergency", message, context)

    def alert(self, message: Any, context: Mapping[str, Any] | None = None) -> None:
        self.log("alert", message, context)

    def critical(self, message: Any, context: Mapping[str, Any] | None = None) -> None:
        self.log("critical", message, context)

    def error(self, message: Any, context: Mapping[str, Any] | None = None) -> None:
        self.log("error", message, context)

    def warning(self, message: Any, context: Mapping[str, Any] | None = None) -> None:
        self.log("warning", message, context)

    def notice(self, message: Any, context: Mapping[str, Any] | None = None) -> None:
        self.log("notice", message, context)

    def info(self, message: Any, context: Mapping[str, Any] | None = None) -> None:
        self.log("info", message, context)

    def debug(self, message: Any, context: Mapping[str, Any] | None = None) -> None:
        self.log("debug", message, context)

    # ----- Aggregation -----

    def aggregate(self, source: MessageSource) -> None:
        """Merge ``source``'s messages into this log at read time.

        Raises:
            CollectorError: If a collector is asked to aggregate itself.

        """
        if source is self:
            msg = f"Collector {self._name!r} cannot aggregate itself"
            raise CollectorError(msg)
        if self._collect_file and isinstance(source, SupportsFileTrace):
            source.collect_file_trace(True)
        self._aggregates.append(weakref.ref(source))

    def get_messages(self) -> list[MessageEntry]:
        """Own and aggregated messages, stably sorted by time.

        A collector reached again through an aggregation cycle contributes
        nothing the second time.

        """
        if self._merging:
            return []
        messages = list(self._messages)
        self._merging = True
        try:
            for ref in self._aggregates:
                source = ref()
                if source is None:
                    continue
                tag = source.name
                messages.extend(
                    dataclasses.replace(entry, collector=tag) for entry in source.get_messages()
                )
        finally:
            self._merging = False
        messages.sort(key=lambda entry: entry.time)
        return messages

    def clear(self) -> None:
        """Delete this collector's own messages (aggregates are untouched)."""
        self._messages = []

    def collect(self) -> Snapshot:
        messages = self.get_messages()
        return {
            "count": len(messages),
            "messages": [entry.to_dict() for entry in messages],
        }


# ---------------------------------------------------------------------------
# stdlib logging bridge
# ---------------------------------------------------------------------------

_LOGGING_LEVELS: Sequence[tuple[int, Level]] = (
    (logging.CRITICAL, "critical"),
    (logging.ERROR, "error"),
    (logging.WARNING, "warning"),
    (logging.INFO, "info"),
)


def level_for(levelno: int) -> Level:
    """Map a ``logging`` level number onto a toolbar level."""
    for threshold, level in _LOGGING_LEVELS:
        if levelno >= threshold:
            return level
    return "debug"


class MessagesHandler(logging.Handler):
    """Forwards ``logging`` records into a MessagesCollector.

    Usage::

        handler = MessagesHandler(debugbar.messages)
        logging.getLogger("app").addHandler(handler)

    """

    def __init__(self, collector: MessagesCollector, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.collector = collector

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.collector.add_message(self.format(record), level_for(record.levelno))
        except Exception:
            self.handleError(record)
