"""Call-stack capture and origin filtering.

Every query and message is correlated with the code that produced it.
The stack is captured innermost-first, then filtered against a set of
excluded path substrings (the toolbar itself, logging internals, vendor
code) so the reported origin is the application frame that matters.

Matching is a plain substring test on the forward-slash normalized path,
never a glob or regex.

"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

DEFAULT_SOURCE_LIMIT = 5


@dataclass(frozen=True, slots=True)
class Frame:
    """One entry of a captured call stack.

    Attributes:
        index: Position in the captured stack (0 = innermost).
        file: Source file path, if known.
        line: Line number, if known.
        namespace: Enclosing class (from the code object's qualified name).
        function: Function name.

    """

    index: int
    file: str | None = None
    line: int | None = None
    namespace: str | None = None
    function: str | None = None

    def to_dict(self, name: str | None = None) -> dict[str, Any]:
        """Serialize for a snapshot; ``name`` is the display path."""
        return {
            "index": self.index,
            "namespace": self.namespace,
            "function": self.function,
            "name": name if name is not None else self.file,
            "file": self.file,
            "line": self.line if self.line else 1,
        }


def normalize_path(path: str) -> str:
    """Replace Windows separators so excluded substrings match everywhere."""
    return path.replace("\\", "/")


def is_excluded(file: str | None, excluded: Iterable[str]) -> bool:
    """True when ``file`` is missing or contains any excluded substring."""
    if not file:
        return True
    normalized = normalize_path(file)
    return any(fragment in normalized for fragment in excluded)


def first_relevant_frame(
    stack: Sequence[Frame],
    excluded: Iterable[str],
) -> Frame | None:
    """Return the first frame outside the excluded paths.

    Falls back to the innermost frame when every frame is excluded, so a
    non-empty stack always yields a frame.  Returns None only for an
    empty stack.

    """
    if not stack:
        return None
    fragments = tuple(excluded)
    for frame in stack:
        if not is_excluded(frame.file, fragments):
            return frame
    return stack[0]


def relevant_frames(
    stack: Sequence[Frame],
    excluded: Iterable[str],
    limit: int = DEFAULT_SOURCE_LIMIT,
) -> tuple[Frame, ...]:
    """Return every qualifying frame, in stack order, capped at ``limit``.

    A frame qualifies when it has a file outside the excluded paths and a
    function or class name.  Anything that is not a positive int (bools
    included) falls back to the default limit.

    """
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        limit = DEFAULT_SOURCE_LIMIT
    fragments = tuple(excluded)
    frames: list[Frame] = []
    for frame in stack:
        if len(frames) >= limit:
            break
        if _parse_frame(frame, fragments) is not None:
            frames.append(frame)
    return tuple(frames)


def _parse_frame(frame: Frame, fragments: tuple[str, ...]) -> Frame | None:
    if not (frame.namespace or frame.function):
        return None
    if is_excluded(frame.file, fragments):
        return None
    return frame


def capture_stack(skip: int = 0, depth: int = 40) -> tuple[Frame, ...]:
    """Capture the caller's stack, innermost frame first.

    Args:
        skip: Number of additional frames to drop above the caller.
        depth: Maximum number of frames to capture.

    Returns:
        The captured frames, or an empty tuple when the interpreter does
        not support frame introspection.

    """
    try:
        current = sys._getframe(skip + 1)
    except (AttributeError, ValueError):
        return ()

    frames: list[Frame] = []
    while current is not None and len(frames) < depth:
        code = current.f_code
        qualname = getattr(code, "co_qualname", code.co_name)
        namespace, _, _ = qualname.rpartition(".")
        frames.append(
            Frame(
                index=len(frames),
                file=code.co_filename or None,
                line=current.f_lineno,
                namespace=namespace.replace(".<locals>", "") or None,
                function=code.co_name,
            )
        )
        current = current.f_back
    return tuple(frames)
