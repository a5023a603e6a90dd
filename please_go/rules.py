"""Conversion of discovered packages into build rule definitions."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List
import posixpath

from .imports import ImportResolver
from .packages import Package


class RuleKind(str, Enum):
    LIBRARY = "go_library"
    BINARY = "go_binary"
    CGO_LIBRARY = "cgo_library"
    CGO_BINARY = "cgo_binary"

    @classmethod
    def select(cls, *, is_command: bool, has_cgo: bool) -> "RuleKind":
        if has_cgo:
            return cls.CGO_BINARY if is_command else cls.CGO_LIBRARY
        return cls.BINARY if is_command else cls.LIBRARY

    @property
    def is_cgo(self) -> bool:
        return self in (RuleKind.CGO_LIBRARY, RuleKind.CGO_BINARY)


@dataclass(slots=True)
class Rule:
    name: str
    kind: RuleKind
    srcs: List[str] = field(default_factory=list)
    cgo_srcs: List[str] = field(default_factory=list)
    compiler_flags: List[str] = field(default_factory=list)
    linker_flags: List[str] = field(default_factory=list)
    pkg_configs: List[str] = field(default_factory=list)
    asm_srcs: List[str] = field(default_factory=list)
    hdrs: List[str] = field(default_factory=list)
    deps: List[str] = field(default_factory=list)
    embed_patterns: List[str] = field(default_factory=list)


class RuleSynthesizer:
    """Builds at most one rule per package, resolving its imports to targets."""

    def __init__(self, resolver: ImportResolver, *, module_path: str, src_root: Path) -> None:
        self._resolver = resolver
        self._module_path = module_path
        self._src_root = src_root.resolve()

    def rule_name(self, directory: Path) -> str:
        """Directory basename, or the module basename for the source root."""
        resolved = directory.resolve()
        name = resolved.name
        if resolved == self._src_root or not name:
            name = posixpath.basename(self._module_path.rstrip("/"))
        if name in ("", "."):
            raise AssertionError(
                f"derived an invalid rule name {name!r} for module {self._module_path!r} in {directory}"
            )
        return name

    def dependencies(self, imports: List[str]) -> List[str]:
        deps: List[str] = []
        for import_path in imports:
            target = self._resolver.resolve(import_path)
            if target:
                deps.append(target)
        return deps

    def synthesize(self, package: Package) -> Rule | None:
        if not package.has_sources:
            return None
        return Rule(
            name=self.rule_name(package.dir),
            kind=RuleKind.select(is_command=package.is_command, has_cgo=bool(package.cgo_files)),
            srcs=list(package.go_files),
            cgo_srcs=list(package.cgo_files),
            compiler_flags=list(package.cgo_cflags),
            linker_flags=list(package.cgo_ldflags),
            pkg_configs=list(package.cgo_pkg_config),
            asm_srcs=list(package.s_files),
            hdrs=list(package.h_files),
            deps=self.dependencies(list(package.imports)),
            embed_patterns=list(package.embed_patterns),
        )


__all__ = ["Rule", "RuleKind", "RuleSynthesizer"]
