"""Shared type definitions for tabby."""

from collections.abc import Mapping, Sequence
from typing import Any, Literal

# PSR-3 style message level
type Level = Literal[
    "emergency", "alert", "critical", "error", "warning", "notice", "info", "debug"
]

# Kind of a recorded database event
type QueryKind = Literal["query", "transaction"]

# Positional (sequence) or named (mapping) statement bindings
type Bindings = Sequence[Any] | Mapping[str | int, Any]

# Serializable snapshot returned by a collector's collect()
type Snapshot = dict[str, Any]
