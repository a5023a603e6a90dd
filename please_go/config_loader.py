"""Plugin settings loading and validation."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping

from core.config_loader import ConfigError, find_config_file, load_config_file, merge_mappings, normalize_string_list

from .buildfile import DEFAULT_SUBINCLUDE
from .console import Console
from .imports import DEFAULT_THIRD_PARTY_DIR


CONFIG_STEM = "please_go"


def _check_keys(section: str, data: Mapping[str, Any], allowed: set[str]) -> None:
    unknown = {str(key) for key in data.keys() if str(key) not in allowed}
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Section [{section}] contains unknown keys: {joined}")


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, Mapping):
        raise ConfigError(f"Section [{name}] must be a mapping")
    return section


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_bool(value: Any, key: str) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{key} must be a boolean, got {value!r}")


def _optional_int(value: Any, key: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc


@dataclass(slots=True)
class GlobalConfig:
    log_level: str = "info"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GlobalConfig":
        _check_keys("global", data, {"log_level"})
        level = str(data.get("log_level", "info")).lower()
        if level not in Console.LEVELS:
            raise ConfigError(f"global.log_level must be one of {', '.join(Console.LEVELS)}, got {level!r}")
        return cls(log_level=level)


@dataclass(slots=True)
class GenerateSettings:
    build_file_name: str = "BUILD"
    subinclude: str = DEFAULT_SUBINCLUDE
    third_party_dir: str = DEFAULT_THIRD_PARTY_DIR
    plugin_name: str = "go"
    plugin_target: str = "@//plugins:go"
    fixture_dir: str = "testdata"
    goos: str | None = None
    goarch: str | None = None
    cgo_enabled: bool | None = None
    tags: List[str] = field(default_factory=list)
    go_release: int | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GenerateSettings":
        _check_keys("generate", data, {item.name for item in fields(cls)})
        defaults = cls()
        return cls(
            build_file_name=str(data.get("build_file_name", defaults.build_file_name)),
            subinclude=str(data.get("subinclude", defaults.subinclude)),
            third_party_dir=str(data.get("third_party_dir", defaults.third_party_dir)),
            plugin_name=str(data.get("plugin_name", defaults.plugin_name)),
            plugin_target=str(data.get("plugin_target", defaults.plugin_target)),
            fixture_dir=str(data.get("fixture_dir", defaults.fixture_dir)),
            goos=_optional_str(data.get("goos")),
            goarch=_optional_str(data.get("goarch")),
            cgo_enabled=_optional_bool(data.get("cgo_enabled"), "generate.cgo_enabled"),
            tags=normalize_string_list(data.get("tags"), field_name="generate.tags"),
            go_release=_optional_int(data.get("go_release"), "generate.go_release"),
        )


@dataclass(slots=True)
class ToolchainSettings:
    go_tool: str = "go"
    cc_tool: str = "cc"
    pkg_config_tool: str = "pkg-config"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ToolchainSettings":
        _check_keys("toolchain", data, {"go_tool", "cc_tool", "pkg_config_tool"})
        defaults = cls()
        return cls(
            go_tool=_optional_str(data.get("go_tool")) or defaults.go_tool,
            cc_tool=_optional_str(data.get("cc_tool")) or defaults.cc_tool,
            pkg_config_tool=_optional_str(data.get("pkg_config_tool")) or defaults.pkg_config_tool,
        )


@dataclass(slots=True)
class Settings:
    global_config: GlobalConfig = field(default_factory=GlobalConfig)
    generate: GenerateSettings = field(default_factory=GenerateSettings)
    toolchain: ToolchainSettings = field(default_factory=ToolchainSettings)
    source: Path | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, source: Path | None = None) -> "Settings":
        _check_keys("root", data, {"global", "generate", "toolchain"})
        return cls(
            global_config=GlobalConfig.from_mapping(_section(data, "global")),
            generate=GenerateSettings.from_mapping(_section(data, "generate")),
            toolchain=ToolchainSettings.from_mapping(_section(data, "toolchain")),
            source=source,
        )


def load_settings(
    path: Path | None = None,
    *,
    search_dir: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load settings from ``path``, or from ``please_go.*`` in ``search_dir``.

    ``overrides`` is deep-merged over the file contents, so command line values
    win over configured ones. Without a file only the overrides and defaults apply.
    """
    if path is None and search_dir is not None:
        path = find_config_file(search_dir, CONFIG_STEM)
    data: Dict[str, Any] = dict(load_config_file(path)) if path is not None else {}
    if overrides:
        data = merge_mappings(data, overrides)
    try:
        return Settings.from_mapping(data, source=path)
    except ConfigError as exc:
        if path is None or exc.path is not None:
            raise
        raise ConfigError(str(exc), path=path) from exc


__all__ = [
    "CONFIG_STEM",
    "GenerateSettings",
    "GlobalConfig",
    "Settings",
    "ToolchainSettings",
    "load_settings",
]
