"""Command line interface for the Go plugin tools."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Any, Dict, Iterable, List
import sys

from core.command_runner import CommandError, CommandRunner, RecordingCommandRunner, SubprocessCommandRunner
from core.config_loader import ConfigError

from .config_loader import Settings, load_settings
from .console import Console
from .constraints import ConstraintError
from .generate import Generator
from .imports import ReplaceCycleError
from .modfile import ManifestError
from .packages import DiscoveryError
from .pipeline import ArtifactCollisionError, PackageBuild, StageError, ToolchainPipeline
from .toolchain import PkgConfigError, Toolchain, ToolchainError


_REPORTED_ERRORS = (
    ArtifactCollisionError,
    CommandError,
    ConstraintError,
    DiscoveryError,
    ManifestError,
    PkgConfigError,
    ReplaceCycleError,
    StageError,
    ToolchainError,
    OSError,
)


def _split_list(values: Iterable[str] | None) -> List[str]:
    items: List[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


def _add_common_arguments(parser: ArgumentParser) -> None:
    parser.add_argument("--config", type=Path, help="Settings file (TOML, JSON or YAML)")
    parser.add_argument("--log-level", choices=sorted(Console.LEVELS), help="Console verbosity")


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="please_go", description="Go rule generation and compilation for Please")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser("generate", help="Write BUILD files for a Go module source tree")
    _add_common_arguments(generate_parser)
    generate_parser.add_argument("--src-root", type=Path, default=Path("."), help="Module root containing go.mod")
    generate_parser.add_argument(
        "--requirements",
        action="append",
        default=[],
        metavar="MODULE[,MODULE]",
        help="Additional module paths available for import resolution",
    )
    generate_parser.add_argument("--goos", help="Target operating system")
    generate_parser.add_argument("--goarch", help="Target architecture")
    generate_parser.add_argument(
        "--tags", action="append", default=[], help="Build tags replacing the configured ones (comma-separated)"
    )

    build_parser = subparsers.add_parser("build", help="Compile one package through the Go toolchain")
    _add_common_arguments(build_parser)
    build_parser.add_argument("--go", dest="go_tool", help="Go binary")
    build_parser.add_argument("--cc", dest="cc_tool", help="C compiler and external linker")
    build_parser.add_argument("--pkg-config", dest="pkg_config_tool", help="pkg-config binary")
    build_parser.add_argument("--import-path", default="", help="Import path of the package")
    build_parser.add_argument("--src-dir", type=Path, default=Path("."), help="Directory holding the sources")
    build_parser.add_argument("--obj-dir", type=Path, required=True, help="Directory for intermediate files")
    build_parser.add_argument("--out", type=Path, required=True, help="Package archive to write")
    build_parser.add_argument("--importcfg", type=Path, required=True, help="Import configuration for compilation")
    build_parser.add_argument("--trimpath", help="Prefix removed from recorded source paths")
    build_parser.add_argument("--embedcfg", type=Path, help="Embed configuration file")
    build_parser.add_argument("--go-srcs", action="append", default=[], help="Go sources (comma-separated)")
    build_parser.add_argument("--cgo-srcs", action="append", default=[], help="cgo sources (comma-separated)")
    build_parser.add_argument("--c-srcs", action="append", default=[], help="C/C++ sources (comma-separated)")
    build_parser.add_argument("--asm-srcs", action="append", default=[], help="Assembly sources (comma-separated)")
    build_parser.add_argument("--cflags", action="append", default=[], help="C compiler flag (repeat as --cflags=VALUE)")
    build_parser.add_argument("--ldflags", action="append", default=[], help="Linker flag (repeat as --ldflags=VALUE)")
    build_parser.add_argument("--pkg-configs", action="append", default=[], help="pkg-config names (comma-separated)")
    build_parser.add_argument("--binary", type=Path, help="Link the archive into this executable")
    build_parser.add_argument("--link-importcfg", type=Path, help="Transitive import configuration for linking")
    build_parser.add_argument("--timeout", type=float, help="Seconds each tool invocation may run")
    build_parser.add_argument("--dry-run", action="store_true", help="Print commands without executing them")

    version_parser = subparsers.add_parser("version", help="Print the minor version of the Go toolchain")
    _add_common_arguments(version_parser)
    version_parser.add_argument("--go", dest="go_tool", help="Go binary")

    return parser.parse_args(list(argv))


def _overrides(args: Namespace) -> Dict[str, Any]:
    generate: Dict[str, Any] = {}
    for key in ("goos", "goarch"):
        value = getattr(args, key, None)
        if value:
            generate[key] = value
    tags = _split_list(getattr(args, "tags", None))
    if tags:
        generate["tags"] = tags

    toolchain = {
        key: getattr(args, key)
        for key in ("go_tool", "cc_tool", "pkg_config_tool")
        if getattr(args, key, None)
    }
    overrides: Dict[str, Any] = {}
    if args.log_level:
        overrides["global"] = {"log_level": args.log_level}
    if generate:
        overrides["generate"] = generate
    if toolchain:
        overrides["toolchain"] = toolchain
    return overrides


def _load(args: Namespace, search_dir: Path | None) -> tuple[Settings, Console]:
    settings = load_settings(args.config, search_dir=search_dir, overrides=_overrides(args))
    console = Console(settings.global_config.log_level, dry_run=getattr(args, "dry_run", False))
    if settings.source is not None:
        console.debug(f"Loaded settings from {settings.source}")
    return settings, console


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    search_dir = args.src_root if args.command == "generate" else Path.cwd()
    try:
        settings, console = _load(args, search_dir)
    except ConfigError as exc:
        Console("error").error(f"Invalid configuration: {exc}")
        return 1

    try:
        if args.command == "generate":
            return _handle_generate(args, settings, console)
        if args.command == "build":
            return _handle_build(args, settings, console)
        if args.command == "version":
            return _handle_version(args, settings, console)
    except _REPORTED_ERRORS as exc:
        console.error(str(exc))
        return 1
    raise ValueError(f"Unknown command: {args.command}")


def _handle_generate(args: Namespace, settings: Settings, console: Console) -> int:
    generator = Generator(
        args.src_root,
        requirements=_split_list(args.requirements),
        settings=settings.generate,
        console=console,
    )
    report = generator.generate()
    console.debug(f"Plugin configuration written to {report.config_file}")
    return 0


def _toolchain(settings: Settings, console: Console, runner: CommandRunner) -> Toolchain:
    config = settings.toolchain
    return Toolchain(
        go_tool=config.go_tool,
        cc_tool=config.cc_tool,
        pkg_config_tool=config.pkg_config_tool,
        runner=runner,
        goos=settings.generate.goos,
        goarch=settings.generate.goarch,
        console=console,
    )


def _handle_build(args: Namespace, settings: Settings, console: Console) -> int:
    runner: SubprocessCommandRunner | RecordingCommandRunner
    if args.dry_run:
        runner = RecordingCommandRunner()
    else:
        runner = SubprocessCommandRunner(timeout=args.timeout)

    build = PackageBuild(
        import_path=args.import_path,
        source_dir=args.src_dir,
        object_dir=args.obj_dir,
        out=args.out,
        importcfg=args.importcfg,
        go_srcs=_split_list(args.go_srcs),
        cgo_srcs=_split_list(args.cgo_srcs),
        c_srcs=_split_list(args.c_srcs),
        asm_srcs=_split_list(args.asm_srcs),
        compiler_flags=list(args.cflags),
        linker_flags=list(args.ldflags),
        pkg_configs=_split_list(args.pkg_configs),
        trimpath=args.trimpath,
        embedcfg=args.embedcfg,
        binary=args.binary,
        link_importcfg=args.link_importcfg,
    )
    pipeline = ToolchainPipeline(_toolchain(settings, console, runner), console=console)
    pipeline.run(build)

    if isinstance(runner, RecordingCommandRunner):
        console.dry(f"{len(runner.commands)} command(s) recorded for {build.import_path or build.out}")
        for line in runner.iter_formatted():
            print(line)
    return 0


def _handle_version(args: Namespace, settings: Settings, console: Console) -> int:
    toolchain = _toolchain(settings, console, SubprocessCommandRunner())
    print(toolchain.go_minor_version())
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
