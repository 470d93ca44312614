"""Shared test fixtures for tabby."""

from __future__ import annotations

from pathlib import Path

import pytest

from tabby.collectors.frames import Frame
from tabby.storage import FileStorage


class FakeClock:
    """Manually advanced wall clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage(tmp_path: Path) -> FileStorage:
    """FileStorage rooted in a fresh temp directory."""
    return FileStorage(tmp_path / "tabby")


def make_frame(
    index: int,
    file: str | None,
    *,
    line: int | None = 10,
    namespace: str | None = None,
    function: str | None = "handler",
) -> Frame:
    return Frame(index=index, file=file, line=line, namespace=namespace, function=function)
