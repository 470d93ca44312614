"""Chirp middleware — one DebugBar per request.

``debugbar_middleware`` creates a standard DebugBar for each request,
makes it reachable through ``current_debugbar()`` while the handler runs,
and saves the collected dataset to storage when the request ends.  The
dataset id is returned in the ``X-Tabby-Id`` response header so the
browser can fetch it through ``open_handler``.

Diagnostics never break the application: storage failures are reported on
stderr and the response (or the handler's exception) goes through as-is.
"""

from __future__ import annotations

import json
import sys
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from tabby._errors import StorageError, TabbyError
from tabby.config import TabbyConfig
from tabby.debugbar import DebugBar
from tabby.storage import FileStorage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from chirp.http.request import Request
    from chirp.http.response import Response, SSEResponse, StreamingResponse
    from chirp.middleware.protocol import Next

    type AnyResponse = Response | StreamingResponse | SSEResponse

HEADER_NAME = "X-Tabby-Id"

_current: ContextVar[DebugBar | None] = ContextVar("tabby_debugbar", default=None)


def current_debugbar() -> DebugBar:
    """The DebugBar of the request being handled.

    Raises:
        TabbyError: Outside of a request wrapped by ``debugbar_middleware``.

    """
    bar = _current.get()
    if bar is None:
        msg = "No DebugBar is active; is debugbar_middleware installed?"
        raise TabbyError(msg)
    return bar


def _request_meta(request: Any) -> dict[str, Any]:
    meta: dict[str, Any] = {}
    method = getattr(request, "method", None)
    if method:
        meta["method"] = str(method)
    path = getattr(request, "path", None)
    if path:
        meta["uri"] = str(path)
    return meta


def _save(bar: DebugBar, meta: dict[str, Any]) -> None:
    try:
        bar.save(**meta)
    except StorageError as exc:
        print(f"  [tabby] {exc}", file=sys.stderr)
        return
    finally:
        bar.close()
    if bar.config.verbose:
        print(bar.summary(), file=sys.stderr)


def debugbar_middleware(
    config: TabbyConfig | None = None,
    storage: FileStorage | None = None,
) -> Callable[[Request, Next], Awaitable[AnyResponse]]:
    """Build a Chirp middleware that collects diagnostics per request.

    Args:
        config: Toolbar configuration; defaults apply when omitted.
        storage: Dataset storage; a FileStorage under ``config.storage_dir``
            by default.

    """
    cfg = config or TabbyConfig()
    store = storage or FileStorage(cfg.storage_dir)

    async def middleware(request: Request, next: Next) -> AnyResponse:
        if not cfg.enabled:
            return await next(request)

        bar = DebugBar.standard(cfg, storage=store)
        token = _current.set(bar)
        meta = _request_meta(request)
        try:
            try:
                response = await next(request)
            except Exception as exc:
                bar.exceptions.add_throwable(exc)
                _save(bar, meta)
                raise
        finally:
            _current.reset(token)

        _save(bar, meta)
        if hasattr(response, "with_header"):
            response = response.with_header(HEADER_NAME, bar.request_id)
        return response

    return middleware


def open_handler(storage: FileStorage, request_id: str) -> str:
    """Stored dataset for ``request_id`` as a JSON document.

    Raises:
        StorageError: If the id is invalid or no dataset is stored under it.

    """
    return json.dumps(storage.get(request_id), default=str)
