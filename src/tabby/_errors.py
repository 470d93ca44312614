"""Tabby error hierarchy.

All tabby-specific errors inherit from TabbyError for easy catching.
"""


class TabbyError(Exception):
    """Base error for all tabby operations."""


class ConfigError(TabbyError):
    """Invalid or missing configuration."""


class CollectorError(TabbyError):
    """Error in collector registration or use (duplicate name, unknown measure)."""


class StorageError(TabbyError):
    """Error reading or writing collected request data."""
