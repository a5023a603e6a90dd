"""Ordered execution of the toolchain stages that build one Go rule."""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Iterator, List

from core.command_runner import CommandError

from .console import QUIET, Console
from .toolchain import PkgConfigError, Toolchain, go_stem, object_name


class Stage(str, Enum):
    PKG_CONFIG = "pkg-config"
    CGO = "cgo"
    SYMABIS = "symabis"
    COMPILE = "compile"
    CC = "cc"
    ASM = "asm"
    PACK = "pack"
    LINK = "link"


class StageError(RuntimeError):
    """The first failing stage of a rule; the tool error is chained as ``__cause__``."""

    def __init__(self, stage: Stage, import_path: str, cause: Exception):
        super().__init__(f"{stage.value} failed for {import_path or '<main>'}: {cause}")
        self.stage = stage
        self.import_path = import_path


class ArtifactCollisionError(ValueError):
    """Raised when two inputs of one rule would produce the same output file."""


@dataclass(slots=True)
class PackageBuild:
    """Resolved inputs of one rule.

    Source file names are relative to ``source_dir``. ``binary`` requests the
    link stage, which reads the transitive ``link_importcfg`` (``importcfg``
    when unset).
    """

    import_path: str
    source_dir: Path
    object_dir: Path
    out: Path
    importcfg: Path
    go_srcs: List[str] = field(default_factory=list)
    cgo_srcs: List[str] = field(default_factory=list)
    c_srcs: List[str] = field(default_factory=list)
    asm_srcs: List[str] = field(default_factory=list)
    compiler_flags: List[str] = field(default_factory=list)
    linker_flags: List[str] = field(default_factory=list)
    pkg_configs: List[str] = field(default_factory=list)
    trimpath: str | None = None
    embedcfg: Path | None = None
    binary: Path | None = None
    link_importcfg: Path | None = None


class ArtifactLayout:
    """File names the stages write into ``object_dir``, derived from input base names."""

    CGO_TYPES = "_cgo_gotypes.go"
    CGO_EXPORT = "_cgo_export.c"
    ASM_HEADER = "go_asm.h"
    SYMABIS = "symabis"

    def __init__(self, object_dir: Path) -> None:
        self.object_dir = object_dir

    def cgo_go(self, source: str) -> Path:
        return self.object_dir / f"{go_stem(source)}.cgo1.go"

    def cgo_c(self, source: str) -> Path:
        return self.object_dir / f"{go_stem(source)}.cgo2.c"

    def object(self, source: str) -> Path:
        return self.object_dir / object_name(source)

    @property
    def asm_header(self) -> Path:
        return self.object_dir / self.ASM_HEADER

    @property
    def symabis(self) -> Path:
        return self.object_dir / self.SYMABIS

    def generated_c(self, cgo_srcs: Iterable[str]) -> List[str]:
        cgo_srcs = list(cgo_srcs)
        if not cgo_srcs:
            return []
        return [self.CGO_EXPORT, *(self.cgo_c(source).name for source in cgo_srcs)]

    def generated_go(self, cgo_srcs: Iterable[str]) -> List[str]:
        cgo_srcs = list(cgo_srcs)
        if not cgo_srcs:
            return []
        return [self.CGO_TYPES, *(self.cgo_go(source).name for source in cgo_srcs)]

    def validate(self, build: PackageBuild) -> None:
        """Reject builds where two inputs map onto the same generated file."""
        self._check_unique("generated Go", build.cgo_srcs, self.generated_go(build.cgo_srcs))
        owners: Dict[str, str] = {}
        sources = [*build.c_srcs, *self.generated_c(build.cgo_srcs), *build.asm_srcs]
        for source in sources:
            name = object_name(source)
            if name in owners:
                raise ArtifactCollisionError(
                    f"{owners[name]} and {source} both compile to {self.object_dir / name}"
                )
            owners[name] = source

    @staticmethod
    def _check_unique(label: str, sources: Iterable[str], names: Iterable[str]) -> None:
        seen: set[str] = set()
        for name in names:
            if name in seen:
                raise ArtifactCollisionError(f"{label} file {name} would be generated twice from {list(sources)}")
            seen.add(name)


@dataclass(slots=True)
class PipelineResult:
    archive: Path
    binary: Path | None = None
    generated_go: List[str] = field(default_factory=list)
    generated_c: List[str] = field(default_factory=list)
    objects: List[str] = field(default_factory=list)
    stages: List[Stage] = field(default_factory=list)


class ToolchainPipeline:
    """Runs cgo, symabis, compile, cc, asm, pack and link for one rule, stopping at the first failure."""

    def __init__(self, toolchain: Toolchain, *, console: Console = QUIET) -> None:
        self._toolchain = toolchain
        self._console = console

    @contextmanager
    def _stage(self, stage: Stage, build: PackageBuild, result: PipelineResult) -> Iterator[None]:
        self._console.debug(f"[{stage.value}] {build.import_path}")
        try:
            yield
        except (CommandError, PkgConfigError, OSError) as exc:
            self._console.error(f"{stage.value} failed for {build.import_path}")
            raise StageError(stage, build.import_path, exc) from exc
        result.stages.append(stage)

    def run(self, build: PackageBuild) -> PipelineResult:
        # Tools run from source_dir; every other path handed to them is absolute.
        object_dir = build.object_dir.resolve()
        out = build.out.resolve()
        importcfg = build.importcfg.resolve()
        embedcfg = build.embedcfg.resolve() if build.embedcfg else None

        layout = ArtifactLayout(object_dir)
        layout.validate(build)
        object_dir.mkdir(parents=True, exist_ok=True)

        tc = self._toolchain
        result = PipelineResult(archive=out)
        c_flags = list(build.compiler_flags)
        ld_flags = list(build.linker_flags)

        if build.pkg_configs:
            with self._stage(Stage.PKG_CONFIG, build, result):
                c_flags += tc.pkg_config_cflags(build.pkg_configs)
                ld_flags += tc.pkg_config_ldflags(build.pkg_configs)

        if build.cgo_srcs:
            with self._stage(Stage.CGO, build, result):
                result.generated_go, result.generated_c = tc.cgo(build.source_dir, object_dir, c_flags, build.cgo_srcs)

        asm_header: Path | None = None
        symabis: Path | None = None
        if build.asm_srcs:
            with self._stage(Stage.SYMABIS, build, result):
                asm_header, symabis = tc.symabis(build.import_path, build.source_dir, object_dir, build.asm_srcs)

        with self._stage(Stage.COMPILE, build, result):
            tc.go_compile(
                import_path=build.import_path,
                importcfg=importcfg,
                out=out,
                go_files=[*build.go_srcs, *result.generated_go],
                trimpath=build.trimpath,
                embedcfg=embedcfg,
                asm_header=asm_header,
                symabis=symabis,
                source_dir=build.source_dir,
            )

        c_files = [*build.c_srcs, *result.generated_c]
        if c_files:
            with self._stage(Stage.CC, build, result):
                result.objects += tc.c_compile(build.source_dir, object_dir, c_files, c_flags)

        if build.asm_srcs:
            with self._stage(Stage.ASM, build, result):
                result.objects += tc.asm(
                    build.import_path, build.source_dir, object_dir, build.asm_srcs, trimpath=build.trimpath
                )

        if result.objects:
            with self._stage(Stage.PACK, build, result):
                tc.pack(out, result.objects)

        if build.binary is not None:
            link_importcfg = (build.link_importcfg or build.importcfg).resolve()
            with self._stage(Stage.LINK, build, result):
                result.binary = tc.link(out, build.binary.resolve(), link_importcfg, ld_flags)

        self._console.info(f"Built {build.import_path or out} ({', '.join(stage.value for stage in result.stages)})")
        return result


__all__ = [
    "ArtifactCollisionError",
    "ArtifactLayout",
    "PackageBuild",
    "PipelineResult",
    "Stage",
    "StageError",
    "ToolchainPipeline",
]
