"""Tabby configuration.

TabbyConfig is the central configuration object, frozen after creation.
"""

import tempfile
from dataclasses import dataclass, field
from pathlib import Path

# Path fragments whose frames never count as the origin of an event.
DEFAULT_EXCLUDED_PATHS: tuple[str, ...] = (
    "/tabby/collectors/",
    "/tabby/debugbar.py",
    "/tabby/middleware.py",
    "/logging/__init__.py",
)


def _default_storage_dir() -> Path:
    return Path(tempfile.gettempdir()) / "tabby"


@dataclass(frozen=True, slots=True)
class TabbyConfig:
    """Configuration for a debug toolbar.

    Attributes:
        enabled: Master switch; the middleware passes requests through untouched
            when disabled.
        storage_dir: Directory where end-of-request snapshots are written.
        exclude_paths: Path substrings whose frames are skipped when resolving
            the origin of a query or message.
        find_source: Resolve query origins.  ``True`` keeps up to 5 frames,
            an int keeps that many, ``False`` disables resolution.
        collect_file_trace: Attach the origin file/line to log messages.
        backtrace_depth: Maximum number of frames captured per event.
        render_sql_with_params: Embed bindings into the displayed SQL.
        duration_background: Annotate statements with Gantt-style
            ``start_percent`` / ``width_percent`` fields.
        use_html_var_dumper: Produce rich HTML for non-string messages and traces.
        chain_exceptions: Also record ``__cause__`` / ``__context__`` exceptions.
        collect_warnings: Route ``warnings.warn`` calls into the exceptions panel.
        trace_memory: Start ``tracemalloc`` so query memory deltas are measured.
        editor: Editor name used for origin links (``vscode``, ``pycharm``, ...).
        editor_link_template: Explicit link template, overrides ``editor``.
        path_replacements: Server path prefix -> local path prefix, applied
            to origin links (useful with containers or remote hosts).
        verbose: Print a one-line summary per request to stderr.

    """

    enabled: bool = True
    storage_dir: Path = field(default_factory=_default_storage_dir)
    exclude_paths: tuple[str, ...] = DEFAULT_EXCLUDED_PATHS
    find_source: bool | int = True
    collect_file_trace: bool = True
    backtrace_depth: int = 40
    render_sql_with_params: bool = False
    duration_background: bool = True
    use_html_var_dumper: bool = False
    chain_exceptions: bool = False
    collect_warnings: bool = False
    trace_memory: bool = False
    editor: str | None = None
    editor_link_template: str | None = None
    path_replacements: dict[str, str] = field(default_factory=dict)
    verbose: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.storage_dir, Path):
            object.__setattr__(self, "storage_dir", Path(self.storage_dir))
        if not isinstance(self.exclude_paths, tuple):
            object.__setattr__(self, "exclude_paths", tuple(self.exclude_paths))

    @property
    def source_limit(self) -> int:
        """Number of origin frames kept per query (0 when disabled)."""
        if self.find_source is False:
            return 0
        if self.find_source is True or self.find_source <= 0:
            return 5
        return self.find_source
