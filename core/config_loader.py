"""Shared helpers for locating and loading configuration mappings."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence

import json
import tomllib

try:  # Optional dependency for YAML support
    import yaml
except ModuleNotFoundError:  # pragma: no cover - exercised when PyYAML absent
    yaml = None


ConfigLoader = Callable[[Any], Mapping[str, Any]]


class ConfigError(ValueError):
    """Raised when a configuration file cannot be read, decoded or validated."""

    def __init__(self, message: str, *, path: Path | None = None):
        super().__init__(f"{path}: {message}" if path is not None else message)
        self.path = path


def _load_yaml(stream: Any) -> Mapping[str, Any]:
    if yaml is None:
        raise ConfigError("PyYAML is required to load YAML configuration files. Install with `pip install PyYAML`.")
    return yaml.safe_load(stream)


FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": tomllib.load,
    ".json": json.load,
    ".yaml": _load_yaml,
    ".yml": _load_yaml,
}
"""Mapping of file suffixes to loader callables, in lookup order."""

_DECODE_ERRORS: tuple[type[Exception], ...] = (tomllib.TOMLDecodeError, json.JSONDecodeError, UnicodeDecodeError)
if yaml is not None:
    _DECODE_ERRORS += (yaml.YAMLError,)


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Decode the mapping stored at ``path``; an empty document yields ``{}``."""

    suffix = path.suffix.lower()
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        supported = ", ".join(sorted(FILE_LOADERS))
        raise ConfigError(f"unsupported configuration file extension {suffix!r} (supported: {supported})", path=path)

    try:
        if suffix == ".toml":
            with path.open("rb") as handle:
                data = loader(handle)
        else:
            with path.open("r", encoding="utf-8") as handle:
                data = loader(handle)
    except OSError as exc:
        raise ConfigError(f"cannot read configuration: {exc.strerror or exc}", path=path) from exc
    except _DECODE_ERRORS as exc:
        raise ConfigError(f"cannot decode configuration: {exc}", path=path) from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError("configuration must contain a mapping at the root", path=path)
    return data


def find_config_file(directory: Path, stem: str) -> Path | None:
    """Return the single ``stem.<suffix>`` file in ``directory``, if any."""

    found: List[Path] = [
        directory / f"{stem}{suffix}" for suffix in FILE_LOADERS if (directory / f"{stem}{suffix}").is_file()
    ]
    if len(found) > 1:
        names = ", ".join(f"'{path.name}'" for path in found)
        raise ConfigError(
            f"multiple configuration files found for '{stem}': {names}; keep only one format",
            path=directory,
        )
    return found[0] if found else None


def merge_mappings(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep merge ``overlay`` into a copy of ``base``; nested mappings merge, other values replace."""

    result: Dict[str, Any] = dict(base)
    for key, value in overlay.items():
        existing = result.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            result[key] = merge_mappings(existing, value)
        else:
            result[key] = value
    return result


def normalize_string_list(value: Any, *, field_name: str | None = None) -> List[str]:
    """Coerce a string or sequence of strings into a list of non-empty trimmed strings."""

    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    label = f"{field_name} " if field_name else ""
    if not isinstance(value, Sequence):
        raise ConfigError(f"{label}must be a string or sequence of strings")

    items: List[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"{label}entries must be strings, got {type(item).__name__}")
        text = item.strip()
        if text:
            items.append(text)
    return items


__all__ = [
    "ConfigError",
    "ConfigLoader",
    "FILE_LOADERS",
    "find_config_file",
    "load_config_file",
    "merge_mappings",
    "normalize_string_list",
]
