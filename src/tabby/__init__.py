"""Tabby — a request debug toolbar for Chirp applications.

Collects what happened while a request ran (SQL statements, log messages,
exceptions, timeline measures, object counts) and stores it as one JSON
dataset per request for the browser toolbar to display.

Quick start::

    from chirp import App
    from tabby import TabbyConfig, debugbar_middleware

    app = App()
    app.add_middleware(debugbar_middleware(TabbyConfig(verbose=True)))

Inside a handler::

    from tabby import current_debugbar

    bar = current_debugbar()
    bar.messages.info("Loaded {count} users", {"count": len(users)})
    with bar.timer.measure("render"):
        ...

"""

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0-dev"
__all__ = [
    "DebugBar",
    "TabbyConfig",
    "__version__",
    "current_debugbar",
    "debugbar_middleware",
    "load_config",
    "open_handler",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import tabby`` fast while providing a clean top-level API.
    """
    if name == "TabbyConfig":
        from tabby.config import TabbyConfig

        return TabbyConfig

    if name == "load_config":
        from tabby.config_loader import load_config

        return load_config

    if name == "DebugBar":
        from tabby.debugbar import DebugBar

        return DebugBar

    if name in ("current_debugbar", "debugbar_middleware", "open_handler"):
        from tabby import middleware

        return getattr(middleware, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
