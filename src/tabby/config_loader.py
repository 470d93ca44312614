"""Load TabbyConfig from tabby.yaml if present.

Merges file config with keyword overrides. Overrides win.
"""

from __future__ import annotations

from pathlib import Path

from tabby._errors import ConfigError
from tabby.config import TabbyConfig

_KNOWN_KEYS = frozenset(TabbyConfig.__dataclass_fields__)


def load_config(root: Path, **overrides: object) -> TabbyConfig:
    """Load TabbyConfig from root, optionally merging tabby.yaml.

    Looks for tabby.yaml, tabby.yml, or tabby.toml in root. If found, loads
    and merges with overrides. Overrides take precedence.

    Raises:
        ConfigError: If a known key has a value of the wrong shape.

    """
    file_config = _read_tabby_config(root)
    merged = {**file_config, **overrides}
    # Normalize storage_dir to Path, relative to root
    if "storage_dir" in merged and merged["storage_dir"] is not None:
        storage_dir = Path(str(merged["storage_dir"]))
        merged["storage_dir"] = storage_dir if storage_dir.is_absolute() else root / storage_dir
    for key in ("exclude_paths",):
        if key in merged and isinstance(merged[key], list):
            merged[key] = tuple(merged[key])
    replacements = merged.get("path_replacements")
    if replacements is not None and not isinstance(replacements, dict):
        msg = f"path_replacements must be a mapping, got {type(replacements).__name__}"
        raise ConfigError(msg)
    return TabbyConfig(**merged)


def _read_tabby_config(root: Path) -> dict[str, object]:
    """Read tabby config from yaml/toml if present. Returns empty dict otherwise."""
    for name in ("tabby.yaml", "tabby.yml"):
        path = root / name
        if path.is_file():
            return _parse_yaml(path)
    toml_path = root / "tabby.toml"
    if toml_path.is_file():
        return _parse_toml(toml_path)
    return {}


def _parse_yaml(path: Path) -> dict[str, object]:
    """Parse YAML config. Returns empty dict on error."""
    import yaml

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError):
        return {}
    if not isinstance(data, dict):
        return {}
    return _flatten_tabby_section(data)


def _parse_toml(path: Path) -> dict[str, object]:
    """Parse TOML config. Returns empty dict on error."""
    import tomllib

    try:
        data = tomllib.loads(path.read_text())
    except (OSError, tomllib.TOMLDecodeError):
        return {}
    return _flatten_tabby_section(data)


def _flatten_tabby_section(data: dict[str, object]) -> dict[str, object]:
    """Extract tabby.* keys into top-level config, dropping unknown keys."""
    result: dict[str, object] = {}
    for k, v in data.items():
        if k != "tabby" and k in _KNOWN_KEYS:
            result[k] = v
    tabby = data.get("tabby")
    if isinstance(tabby, dict):
        for k, v in tabby.items():
            if k in _KNOWN_KEYS:
                result[k] = v
    return result
