"""Depth-first traversal of a Go source tree."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, List
import os

from .console import QUIET, Console
from .packages import DiscoveryError
from .rules import Rule


DEFAULT_FIXTURE_DIR = "testdata"


class Outcome(str, Enum):
    RULE = "rule"
    SKIPPED = "skipped"
    FATAL = "fatal"


@dataclass(frozen=True)
class DirectoryResult:
    """What visiting one directory produced."""

    directory: Path
    outcome: Outcome
    rule: Rule | None = None
    error: Exception | None = None
    reason: str | None = None

    @classmethod
    def produced(cls, directory: Path, rule: Rule) -> "DirectoryResult":
        return cls(directory=directory, outcome=Outcome.RULE, rule=rule)

    @classmethod
    def skipped(cls, directory: Path, reason: str) -> "DirectoryResult":
        return cls(directory=directory, outcome=Outcome.SKIPPED, reason=reason)

    @classmethod
    def fatal(cls, directory: Path, error: Exception) -> "DirectoryResult":
        return cls(directory=directory, outcome=Outcome.FATAL, error=error)


Visitor = Callable[[Path], DirectoryResult]


class PackageWalker:
    """Visits every directory under ``root`` in sorted pre-order.

    Directories named ``fixture_dir`` are pruned together with everything below
    them. A ``FATAL`` result stops the walk by raising its error.
    """

    def __init__(self, root: Path, *, fixture_dir: str = DEFAULT_FIXTURE_DIR, console: Console = QUIET) -> None:
        self._root = root
        self._fixture_dir = fixture_dir
        self._console = console

    def directories(self) -> Iterator[Path]:
        def raise_error(error: OSError) -> None:
            path = Path(error.filename) if error.filename else self._root
            raise DiscoveryError(path, f"cannot read directory: {error.strerror or error}") from error

        if not self._root.is_dir():
            raise DiscoveryError(self._root, "source root is not a directory")
        for current, dirnames, _ in os.walk(self._root, onerror=raise_error):
            pruned = [name for name in dirnames if name == self._fixture_dir]
            for name in pruned:
                self._console.debug(f"Skipping fixture directory {Path(current) / name}")
            dirnames[:] = sorted(name for name in dirnames if name != self._fixture_dir)
            yield Path(current)

    def walk(self, visit: Visitor) -> Iterator[DirectoryResult]:
        for directory in self.directories():
            result = visit(directory)
            if result.outcome is Outcome.FATAL:
                if result.error is None:
                    raise AssertionError(f"fatal result for {directory} carries no error")
                raise result.error
            if result.outcome is Outcome.SKIPPED:
                self._console.debug(f"Skipping {directory}: {result.reason}")
            yield result

    def run(self, visit: Visitor) -> List[DirectoryResult]:
        return list(self.walk(visit))


__all__ = ["DEFAULT_FIXTURE_DIR", "DirectoryResult", "Outcome", "PackageWalker", "Visitor"]
