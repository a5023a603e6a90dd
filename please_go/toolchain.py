"""Invocations of the Go toolchain, the C compiler and pkg-config."""
from __future__ import annotations

from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Iterator, List, Sequence, Tuple
import os
import re
import shutil
import tempfile

from core.command_runner import CommandError, CommandRunner

from .console import QUIET, Console
from .constraints import host_arch, host_os


_VERSION_PATTERN = re.compile(r"go version go1\.([0-9]+)")


class ToolchainError(RuntimeError):
    """Raised when the toolchain reports something this module cannot interpret."""


class PkgConfigError(RuntimeError):
    """Raised when pkg-config cannot resolve the requested configs."""

    def __init__(self, configs: Sequence[str], cause: CommandError):
        super().__init__(f"failed to resolve pkg configs {list(configs)}: {cause}")
        self.configs = list(configs)


def object_name(source: str) -> str:
    """``foo.c`` becomes ``foo.o``; only the last extension is replaced."""
    stem, _ = os.path.splitext(os.path.basename(source))
    return f"{stem}.o"


def go_stem(source: str) -> str:
    name = os.path.basename(source)
    return name[:-3] if name.endswith(".go") else name


@contextmanager
def args_file(args: Sequence[str]) -> Iterator[Path]:
    """Write ``args`` one per line to a temporary file that exists for the ``with`` block."""
    handle = tempfile.NamedTemporaryFile("w", encoding="utf-8", prefix="please_go_args_", delete=False)
    path = Path(handle.name)
    try:
        with handle:
            handle.write("\n".join(args))
        yield path
    finally:
        # A failed cleanup must not replace the error raised inside the block.
        with suppress(OSError):
            path.unlink()


class Toolchain:
    def __init__(
        self,
        *,
        go_tool: str = "go",
        cc_tool: str = "cc",
        pkg_config_tool: str = "pkg-config",
        runner: CommandRunner,
        goos: str | None = None,
        goarch: str | None = None,
        console: Console = QUIET,
    ) -> None:
        self.go_tool = go_tool
        self.cc_tool = cc_tool
        self.pkg_config_tool = pkg_config_tool
        self.runner = runner
        self.goos = goos or os.environ.get("GOOS") or host_os()
        self.goarch = goarch or os.environ.get("GOARCH") or host_arch()
        self._console = console

    def root(self) -> Path:
        """Toolchain root: the parent of the directory holding the ``go`` binary."""
        go_tool = self.go_tool
        if not os.path.isabs(go_tool):
            go_tool = shutil.which(go_tool) or go_tool
        return Path(go_tool).parent.parent

    def _run(self, command: Sequence[str], *, cwd: Path | None = None, note: str | None = None) -> None:
        self._console.debug(self.runner.format_command(command))
        self.runner.run(command, cwd=cwd, note=note)

    def _platform_defines(self) -> List[str]:
        return ["-D", f"GOOS_{self.goos}", "-D", f"GOARCH_{self.goarch}"]

    def cgo(self, source_dir: Path, object_dir: Path, c_flags: Sequence[str], cgo_files: Sequence[str]) -> Tuple[List[str], List[str]]:
        """Run ``go tool cgo``; return the generated Go and C files."""
        go_files = [str(object_dir / "_cgo_gotypes.go")]
        c_files = [str(object_dir / "_cgo_export.c")]
        for cgo_file in cgo_files:
            stem = go_stem(cgo_file)
            go_files.append(str(object_dir / f"{stem}.cgo1.go"))
            c_files.append(str(object_dir / f"{stem}.cgo2.c"))

        self._run(
            [self.go_tool, "tool", "cgo", "-objdir", str(object_dir), "--", "-I", str(object_dir), *c_flags, *cgo_files],
            cwd=source_dir,
            note="cgo",
        )
        return go_files, c_files

    def symabis(self, import_path: str, source_dir: Path, object_dir: Path, asm_files: Sequence[str]) -> Tuple[Path, Path]:
        """Create the ``go_asm.h`` placeholder and generate the ``symabis`` manifest."""
        asm_header = object_dir / "go_asm.h"
        symabis = object_dir / "symabis"
        asm_header.touch()

        command = [
            self.go_tool, "tool", "asm",
            "-I", str(object_dir),
            "-I", str(self.root() / "pkg" / "include"),
            *self._platform_defines(),
        ]
        if import_path:
            command += ["-p", import_path]
        command += ["-gensymabis", "-o", str(symabis), *asm_files]
        self._run(command, cwd=source_dir, note="symabis")
        return asm_header, symabis

    def go_compile(
        self,
        *,
        import_path: str,
        importcfg: Path,
        out: Path,
        go_files: Sequence[str],
        trimpath: str | None = None,
        embedcfg: Path | None = None,
        asm_header: Path | None = None,
        symabis: Path | None = None,
        source_dir: Path | None = None,
    ) -> Path:
        """Compile Go sources into the package archive ``out``."""
        command = [self.go_tool, "tool", "compile", "-pack"]
        if import_path:
            command += ["-p", import_path]
        if trimpath:
            command += ["-trimpath", trimpath]
        if embedcfg:
            command += ["-embedcfg", str(embedcfg)]
        command += ["-importcfg", str(importcfg)]
        if asm_header is not None:
            command += ["-asmhdr", str(asm_header)]
        if symabis is not None:
            command += ["-symabis", str(symabis)]
        command += ["-o", str(out)]

        with args_file(go_files) as path:
            self._run([*command, f"@{path}"], cwd=source_dir, note="compile")
        return out

    def c_compile(self, source_dir: Path, object_dir: Path, c_files: Sequence[str], c_flags: Sequence[str]) -> List[str]:
        """Compile each C/C++ file to ``<base>.o``; the first failure stops the loop."""
        objects: List[str] = []
        for c_file in c_files:
            obj = str(object_dir / object_name(c_file))
            self._run(
                [self.cc_tool, "-Wno-error", "-Wno-unused-parameter", "-c", *c_flags, "-I", ".", "-o", obj, c_file],
                cwd=source_dir,
                note="cc",
            )
            objects.append(obj)
        return objects

    def asm(
        self,
        import_path: str,
        source_dir: Path,
        object_dir: Path,
        asm_files: Sequence[str],
        *,
        trimpath: str | None = None,
    ) -> List[str]:
        """Assemble each file to ``<base>.o``; the first failure stops the loop."""
        prefix = [self.go_tool, "tool", "asm"]
        if import_path:
            prefix += ["-p", import_path]
        if trimpath:
            prefix += ["-trimpath", trimpath]
        prefix += ["-I", str(object_dir), "-I", str(self.root() / "pkg" / "include"), *self._platform_defines()]

        objects: List[str] = []
        for asm_file in asm_files:
            obj = str(object_dir / object_name(asm_file))
            self._run([*prefix, "-o", obj, asm_file], cwd=source_dir, note="asm")
            objects.append(obj)
        return objects

    def pack(self, archive: Path, objects: Sequence[str]) -> None:
        """Append ``objects`` to ``archive``."""
        self._run([self.go_tool, "tool", "pack", "r", str(archive), *objects], note="pack")

    def link(self, archive: Path, out: Path, importcfg: Path, ld_flags: Sequence[str]) -> Path:
        self._run(
            [
                self.go_tool, "tool", "link",
                "-extld", self.cc_tool,
                "-extldflags", " ".join(ld_flags),
                "-importcfg", str(importcfg),
                "-o", str(out),
                str(archive),
            ],
            note="link",
        )
        return out

    def go_minor_version(self) -> int:
        output = self.runner.combined_output([self.go_tool, "version"])
        match = _VERSION_PATTERN.search(output)
        if not match:
            raise ToolchainError(f"cannot parse Go version from {output.strip()!r}")
        return int(match.group(1))

    def pkg_config_cflags(self, configs: Sequence[str]) -> List[str]:
        return self._pkg_config("--cflags", configs)

    def pkg_config_ldflags(self, configs: Sequence[str]) -> List[str]:
        return self._pkg_config("--libs", configs)

    def _pkg_config(self, mode: str, configs: Sequence[str]) -> List[str]:
        try:
            output = self.runner.combined_output([self.pkg_config_tool, mode, *configs])
        except CommandError as exc:
            raise PkgConfigError(configs, exc) from exc
        return output.split()


def go_minor_version(go_tool: str, runner: CommandRunner) -> int:
    """Minor version of the Go toolchain at ``go_tool``."""
    return Toolchain(go_tool=go_tool, runner=runner).go_minor_version()


__all__ = [
    "PkgConfigError",
    "Toolchain",
    "ToolchainError",
    "args_file",
    "go_minor_version",
    "go_stem",
    "object_name",
]
