"""Snapshot storage — one JSON file per request.

The toolbar stores each end-of-request dataset under its request id so
the browser can fetch it afterwards (for AJAX requests, redirects, or
deferred loading).  ``TempFileStorage`` deletes a dataset once it has
been read.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from tabby._errors import StorageError

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileStorage:
    """Stores collected data as ``<id>.json`` files in a directory.

    Args:
        directory: Target directory, created on first write.

    """

    __slots__ = ("_directory",)

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def make_filename(self, request_id: str) -> Path:
        """Path of the file for ``request_id``.

        Raises:
            StorageError: If the id could escape the storage directory.

        """
        if not _SAFE_ID.match(request_id) or request_id in (".", ".."):
            msg = f"Invalid request id: {request_id!r}"
            raise StorageError(msg)
        return self._directory / f"{request_id}.json"

    def save(self, request_id: str, data: dict[str, Any]) -> Path:
        """Write ``data`` for ``request_id``.

        Raises:
            StorageError: If the dataset cannot be written.

        """
        path = self.make_filename(request_id)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, default=str))
        except OSError as exc:
            msg = f"Cannot write dataset {request_id!r} to {path}: {exc}"
            raise StorageError(msg) from exc
        return path

    def get(self, request_id: str) -> dict[str, Any]:
        """Read the dataset stored for ``request_id``.

        Raises:
            StorageError: If the dataset is missing or unreadable.

        """
        path = self.make_filename(request_id)
        try:
            return json.loads(path.read_text())
        except (OSError, ValueError) as exc:
            msg = f"Cannot read dataset {request_id!r}: {exc}"
            raise StorageError(msg) from exc

    def find(self, limit: int = 20, offset: int = 0) -> list[dict[str, Any]]:
        """Metadata of stored datasets, newest first."""
        if not self._directory.is_dir():
            return []
        metas: list[dict[str, Any]] = []
        for path in self._directory.glob("*.json"):
            try:
                data = json.loads(path.read_text())
            except (OSError, ValueError):
                continue
            meta = data.get("__meta") if isinstance(data, dict) else None
            if isinstance(meta, dict):
                metas.append(meta)
        metas.sort(key=lambda meta: meta.get("utime", 0), reverse=True)
        return metas[offset:offset + limit]

    def clear(self) -> int:
        """Delete every stored dataset and return how many were removed."""
        if not self._directory.is_dir():
            return 0
        count = 0
        for path in self._directory.glob("*.json"):
            try:
                path.unlink()
            except OSError:
                continue
            count += 1
        return count


class TempFileStorage(FileStorage):
    """FileStorage whose datasets are deleted as soon as they are read."""

    __slots__ = ()

    def get(self, request_id: str) -> dict[str, Any]:
        data = super().get(request_id)
        try:
            self.make_filename(request_id).unlink()
        except OSError:
            pass  # best-effort cleanup
        return data
