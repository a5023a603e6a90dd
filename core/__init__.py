"""Shared core utilities for process execution and configuration loading."""

from .command_runner import (
    CommandError,
    CommandResult,
    CommandRunner,
    RecordingCommandRunner,
    SubprocessCommandRunner,
)
from .config_loader import (
    ConfigError,
    ConfigLoader,
    FILE_LOADERS,
    find_config_file,
    load_config_file,
    merge_mappings,
    normalize_string_list,
)

__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "ConfigError",
    "ConfigLoader",
    "FILE_LOADERS",
    "find_config_file",
    "load_config_file",
    "merge_mappings",
    "normalize_string_list",
]
