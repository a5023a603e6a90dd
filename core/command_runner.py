"""Utilities for executing external tools with optional dry-run support."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence
import os
import shlex
import subprocess


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    cwd: str | None = None


class CommandError(RuntimeError):
    """Raised when a command fails or cannot be started."""

    def __init__(self, result: CommandResult, *, reason: str | None = None):
        formatted = " ".join(map(shlex.quote, result.command))
        if reason is None:
            reason = f"exit code {result.returncode}"
        message = f"Command failed with {reason}: {formatted}"
        if result.cwd:
            message = f"{message}\ncwd: {result.cwd}"
        output = "\n".join(part for part in (result.stdout, result.stderr) if part)
        if output:
            message = f"{message}\noutput: {output.rstrip()}"
        super().__init__(message)
        self.result = result

    @property
    def command(self) -> Sequence[str]:
        return self.result.command

    @property
    def output(self) -> str:
        return self.result.stdout + self.result.stderr


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        note: str | None = None,
    ) -> CommandResult:
        raise NotImplementedError

    def combined_output(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        """Run ``command`` and return stdout and stderr interleaved."""
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return " ".join(shlex.quote(part) for part in command)


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`."""

    def __init__(self, *, timeout: float | None = None) -> None:
        self._timeout = timeout

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    def _execute(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        merge_stderr: bool,
    ) -> CommandResult:
        cwd_str = str(cwd) if cwd else None
        try:
            process = subprocess.run(
                list(command),
                cwd=cwd_str,
                env=self._merge_environment(env),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
                text=True,
                check=False,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            result = CommandResult(command=command, returncode=-1, stdout=_text(exc.stdout), stderr=_text(exc.stderr), cwd=cwd_str)
            raise CommandError(result, reason=f"timeout after {self._timeout}s") from exc
        except OSError as exc:
            result = CommandResult(command=command, returncode=-1, stdout="", stderr=str(exc), cwd=cwd_str)
            raise CommandError(result, reason="failure to start") from exc

        result = CommandResult(
            command=command,
            returncode=process.returncode,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
            cwd=cwd_str,
        )
        if result.returncode != 0:
            raise CommandError(result)
        return result

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        note: str | None = None,
    ) -> CommandResult:
        return self._execute(command, cwd=cwd, env=env, merge_stderr=False)

    def combined_output(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        return self._execute(command, cwd=cwd, env=env, merge_stderr=True).stdout


def _text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return value


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]
    note: str | None


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them.

    ``responses`` maps a command tuple to the output returned by
    :meth:`combined_output`; unknown commands produce empty output.
    """

    def __init__(self, responses: Mapping[Sequence[str], str] | None = None) -> None:
        self.commands: List[RecordedCommand] = []
        self.responses: Dict[tuple[str, ...], str] = {
            tuple(command): output for command, output in (responses or {}).items()
        }

    @staticmethod
    def _record_entry(
        *,
        command: Sequence[str],
        cwd: Path | None,
        env: Mapping[str, str] | None,
        note: str | None,
    ) -> RecordedCommand:
        return RecordedCommand(
            command=list(command),
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env else {},
            note=note,
        )

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        note: str | None = None,
    ) -> CommandResult:
        self.commands.append(self._record_entry(command=command, cwd=cwd, env=env, note=note))
        return CommandResult(command=command, returncode=0, stdout="", stderr="", cwd=str(cwd) if cwd else None)

    def combined_output(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        self.commands.append(self._record_entry(command=command, cwd=cwd, env=env, note=None))
        return self.responses.get(tuple(command), "")

    def iter_commands(self) -> Iterable[RecordedCommand]:
        return iter(self.commands)

    def iter_formatted(self, *, workspace: Path | None = None) -> Iterable[str]:
        default_cwd = str(workspace) if workspace else None
        for record in self.commands:
            cmd = self.format_command(record.command)
            cwd = record.cwd or default_cwd
            note = record.note
            parts: List[str] = ["[dry-run]"]
            if note:
                parts.append(note)
            if cwd:
                parts.append(f"(cwd={cwd})")
            parts.append(cmd)
            yield " ".join(parts)
