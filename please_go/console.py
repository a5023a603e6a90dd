"""Console output handler shared by the generator, pipeline and CLI."""
from __future__ import annotations

import sys
from typing import TextIO


class Console:
    """Simple console output handler with configurable log level.

    Levels: none < error < info < debug
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "info": 2,
        "debug": 3,
    }

    def __init__(
        self,
        level: str = "info",
        dry_run: bool = False,
        *,
        stream: TextIO | None = None,
        error_stream: TextIO | None = None,
    ):
        if level not in self.LEVELS:
            known = ", ".join(self.LEVELS)
            raise ValueError(f"Unknown log level '{level}'. Known levels: {known}")
        self.level_name = level
        self.level = self.LEVELS[level]
        self.dry_run = dry_run
        self._stream = stream
        self._error_stream = error_stream

    def _out(self) -> TextIO:
        return self._stream or sys.stdout

    def _err(self) -> TextIO:
        return self._error_stream or sys.stderr

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            print(f"[INFO] {message}", file=self._out())

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            print(f"[ERROR] {message}", file=self._err())

    def dry(self, message: str) -> None:
        if self.dry_run:
            print(f"[DRY] {message}", file=self._out())

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            print(f"[DEBUG] {message}", file=self._out())


QUIET = Console("none")
