"""Collectors — per-request diagnostics gathered for the toolbar.

Each collector accumulates events while a request runs and exposes a
JSON-serializable snapshot through ``collect()``:

- **queries**: SQL statements and transaction events with timing, memory
  and origin frames
- **messages**: PSR-3 style log entries, merged with aggregated sources
- **exceptions**: exceptions and warnings with source context
- **counter**: hit counts per class
- **time**: timeline measures
- **mails**: messages sent through the stdlib ``email`` API

Quick Start:
    >>> from tabby.collectors import QueryCollector
    >>> queries = QueryCollector(render_sql_with_params=True)
    >>> _ = queries.add_query("SELECT * FROM users WHERE id = ?", [42], duration=0.003)
    >>> queries.collect()["statements"][0]["sql"]
    'SELECT * FROM users WHERE id = 42;'

"""

from tabby.collectors.base import Collector, DataCollector, SupportsFileTrace
from tabby.collectors.counter import ObjectCountCollector
from tabby.collectors.exceptions import ExceptionsCollector
from tabby.collectors.formatter import DataFormatter, HtmlVarDumper
from tabby.collectors.frames import (
    Frame,
    capture_stack,
    first_relevant_frame,
    relevant_frames,
)
from tabby.collectors.links import EditorLinks
from tabby.collectors.mail import MailCollector
from tabby.collectors.messages import MessageEntry, MessagesCollector, MessagesHandler
from tabby.collectors.queries import QueryCollector, QueryEvent
from tabby.collectors.sql import SqlRenderer, normalize_statement
from tabby.collectors.timeline import Measure, TimeCollector

__all__ = [
    "Collector",
    "DataCollector",
    "DataFormatter",
    "EditorLinks",
    "ExceptionsCollector",
    "Frame",
    "HtmlVarDumper",
    "MailCollector",
    "Measure",
    "MessageEntry",
    "MessagesCollector",
    "MessagesHandler",
    "ObjectCountCollector",
    "QueryCollector",
    "QueryEvent",
    "SqlRenderer",
    "SupportsFileTrace",
    "TimeCollector",
    "capture_stack",
    "first_relevant_frame",
    "normalize_statement",
    "relevant_frames",
]
