"""BUILD file generation for a Go module source tree."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

from .buildfile import render_plugin_config, write_build_file
from .config_loader import GenerateSettings
from .console import QUIET, Console
from .constraints import BuildContext
from .imports import ImportResolver, ResolutionCache
from .modfile import Module, read_module
from .packages import DiscoveryError, PackageDiscoverer
from .rules import RuleSynthesizer
from .walker import DirectoryResult, Outcome, PackageWalker


PLUGIN_CONFIG_NAME = ".plzconfig"


@dataclass(slots=True)
class GenerationReport:
    module: Module
    config_file: Path
    build_files: List[Path] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)


class Generator:
    """Writes the plugin configuration and one BUILD file per Go package under ``src_root``."""

    def __init__(
        self,
        src_root: Path,
        *,
        requirements: Sequence[str] = (),
        settings: GenerateSettings | None = None,
        context: BuildContext | None = None,
        cache: ResolutionCache | None = None,
        console: Console = QUIET,
    ) -> None:
        self._src_root = src_root
        self._requirements = list(requirements)
        self._settings = settings or GenerateSettings()
        self._context = context or context_from_settings(self._settings)
        self._cache = cache if cache is not None else ResolutionCache()
        self._console = console

    def generate(self) -> GenerationReport:
        module = read_module(self._src_root / "go.mod")
        self._console.info(f"Generating BUILD files for {module.path} in {self._src_root}")
        config_file = self.write_config(module)

        resolver = ImportResolver(
            module.known_modules(self._requirements),
            replace=module.replace,
            cache=self._cache,
            local_module=module.path,
            third_party_dir=self._settings.third_party_dir,
        )
        synthesizer = RuleSynthesizer(resolver, module_path=module.path, src_root=self._src_root)
        discoverer = PackageDiscoverer(self._context)
        walker = PackageWalker(self._src_root, fixture_dir=self._settings.fixture_dir, console=self._console)

        report = GenerationReport(module=module, config_file=config_file)

        def visit(directory: Path) -> DirectoryResult:
            try:
                package = discoverer.discover(directory)
            except DiscoveryError as exc:
                return DirectoryResult.fatal(directory, exc)
            if package is None:
                return DirectoryResult.skipped(directory, f"no buildable Go source files for {self._context.goos}/{self._context.goarch}")
            rule = synthesizer.synthesize(package)
            if rule is None:
                return DirectoryResult.skipped(directory, "no rule produced")
            return DirectoryResult.produced(directory, rule)

        for result in walker.walk(visit):
            if result.outcome is Outcome.SKIPPED:
                report.skipped.append(result.directory)
                continue
            if result.rule is None:
                raise AssertionError(f"rule result for {result.directory} carries no rule")
            path = write_build_file(
                result.directory / self._settings.build_file_name,
                [result.rule],
                subinclude=self._settings.subinclude,
            )
            self._console.debug(f"Wrote {result.rule.kind.value} '{result.rule.name}' to {path}")
            report.build_files.append(path)

        self._console.info(
            f"Wrote {len(report.build_files)} BUILD file(s), skipped {len(report.skipped)} director(ies)"
        )
        return report

    def write_config(self, module: Module) -> Path:
        path = self._src_root / PLUGIN_CONFIG_NAME
        path.write_text(
            render_plugin_config(
                module_path=module.path,
                plugin_name=self._settings.plugin_name,
                plugin_target=self._settings.plugin_target,
            ),
            encoding="utf-8",
        )
        return path


def context_from_settings(settings: GenerateSettings) -> BuildContext:
    return BuildContext.from_environment(
        goos=settings.goos,
        goarch=settings.goarch,
        cgo_enabled=settings.cgo_enabled,
        tags=settings.tags or None,
        go_release=settings.go_release,
    )


__all__ = ["GenerationReport", "Generator", "PLUGIN_CONFIG_NAME", "context_from_settings"]
