from __future__ import annotations

from io import StringIO
from pathlib import Path
from typing import List, Mapping, Sequence
import tempfile
import unittest
from unittest.mock import patch

from core.command_runner import CommandError, CommandResult, RecordingCommandRunner
from please_go.console import Console
from please_go.pipeline import (
    ArtifactCollisionError,
    ArtifactLayout,
    PackageBuild,
    Stage,
    StageError,
    ToolchainPipeline,
)
from please_go.toolchain import PkgConfigError, Toolchain


class FailingRunner(RecordingCommandRunner):
    """Records every command and fails those containing ``marker``."""

    def __init__(self, marker: str | None = None, responses: Mapping[Sequence[str], str] | None = None) -> None:
        super().__init__(responses)
        self.marker = marker

    def _check(self, command: Sequence[str], cwd) -> None:
        if self.marker is not None and self.marker in command:
            result = CommandResult(command=command, returncode=1, stdout="", stderr="error", cwd=str(cwd) if cwd else None)
            raise CommandError(result)

    def run(self, command: Sequence[str], *, cwd=None, env=None, note=None) -> CommandResult:
        result = super().run(command, cwd=cwd, env=env, note=note)
        self._check(command, cwd)
        return result

    def combined_output(self, command: Sequence[str], *, cwd=None, env=None) -> str:
        output = super().combined_output(command, cwd=cwd, env=env)
        self._check(command, cwd)
        return output


class ToolchainPipelineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.base = Path(self.temp_dir.name).resolve()
        self.src = self.base / "src"
        self.src.mkdir()
        self.obj = self.base / "obj"

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def build(self, **kwargs) -> PackageBuild:
        values = dict(
            import_path="example.com/lib",
            source_dir=self.src,
            object_dir=self.obj,
            out=self.base / "lib.a",
            importcfg=self.base / "importcfg",
        )
        values.update(kwargs)
        return PackageBuild(**values)

    def pipeline(self, runner: RecordingCommandRunner, **kwargs) -> ToolchainPipeline:
        toolchain = Toolchain(go_tool="/opt/go/bin/go", cc_tool="cc", runner=runner, goos="linux", goarch="amd64")
        return ToolchainPipeline(toolchain, **kwargs)

    @staticmethod
    def notes(runner: RecordingCommandRunner) -> List[str | None]:
        return [record.note for record in runner.iter_commands()]

    def test_pure_go_library_only_compiles(self) -> None:
        runner = FailingRunner()
        result = self.pipeline(runner).run(self.build(go_srcs=["a.go"]))
        self.assertEqual(result.stages, [Stage.COMPILE])
        self.assertEqual(self.notes(runner), ["compile"])
        self.assertEqual(result.archive, self.base / "lib.a")
        self.assertIsNone(result.binary)
        self.assertTrue(self.obj.is_dir())

    def test_stage_order_with_cgo_and_assembly(self) -> None:
        runner = FailingRunner()
        result = self.pipeline(runner).run(
            self.build(go_srcs=["a.go"], cgo_srcs=["foo.go"], c_srcs=["helper.c"], asm_srcs=["add_amd64.s"])
        )

        self.assertEqual(
            result.stages,
            [Stage.CGO, Stage.SYMABIS, Stage.COMPILE, Stage.CC, Stage.ASM, Stage.PACK],
        )
        self.assertEqual(
            self.notes(runner),
            ["cgo", "symabis", "compile", "cc", "cc", "cc", "asm", "pack"],
        )
        self.assertTrue((self.obj / "go_asm.h").exists())
        self.assertEqual(
            [Path(name).name for name in result.generated_go],
            ["_cgo_gotypes.go", "foo.cgo1.go"],
        )
        self.assertEqual(
            [Path(name).name for name in result.generated_c],
            ["_cgo_export.c", "foo.cgo2.c"],
        )
        self.assertEqual(
            [Path(name).name for name in result.objects],
            ["helper.o", "_cgo_export.o", "foo.cgo2.o", "add_amd64.o"],
        )

        compile_command = runner.commands[2].command
        self.assertIn("-asmhdr", compile_command)
        self.assertIn(str(self.obj / "symabis"), compile_command)
        pack_command = runner.commands[-1].command
        self.assertEqual(pack_command[:5], ["/opt/go/bin/go", "tool", "pack", "r", str(self.base / "lib.a")])
        self.assertEqual(len(pack_command), 9)

    def test_tools_run_from_source_dir(self) -> None:
        runner = FailingRunner()
        self.pipeline(runner).run(self.build(go_srcs=["a.go"], c_srcs=["helper.c"]))
        self.assertEqual(runner.commands[0].cwd, str(self.src))
        self.assertEqual(runner.commands[1].cwd, str(self.src))

    def test_first_failing_c_file_stops_pipeline(self) -> None:
        runner = FailingRunner(marker="b.c")
        with self.assertRaises(StageError) as ctx:
            self.pipeline(runner).run(self.build(go_srcs=["a.go"], c_srcs=["a.c", "b.c", "c.c"]))

        self.assertIs(ctx.exception.stage, Stage.CC)
        self.assertEqual(ctx.exception.import_path, "example.com/lib")
        cause = ctx.exception.__cause__
        self.assertIsInstance(cause, CommandError)
        self.assertEqual(cause.command[-1], "b.c")
        self.assertEqual(self.notes(runner), ["compile", "cc", "cc"])
        self.assertFalse(any("c.c" in record.command for record in runner.iter_commands()))

    def test_failure_is_logged(self) -> None:
        errors = StringIO()
        runner = FailingRunner(marker="compile")
        with self.assertRaises(StageError):
            self.pipeline(runner, console=Console("error", error_stream=errors)).run(self.build(go_srcs=["a.go"]))
        self.assertIn("[ERROR] compile failed for example.com/lib", errors.getvalue())

    def test_object_name_collision_is_rejected(self) -> None:
        runner = FailingRunner()
        with self.assertRaises(ArtifactCollisionError):
            self.pipeline(runner).run(self.build(go_srcs=["a.go"], c_srcs=["foo.c"], asm_srcs=["foo.s"]))
        self.assertEqual(runner.commands, [])

    def test_asm_header_failure_is_a_stage_error(self) -> None:
        runner = FailingRunner()
        with patch.object(Path, "touch", side_effect=PermissionError(13, "Permission denied")):
            with self.assertRaises(StageError) as ctx:
                self.pipeline(runner).run(self.build(go_srcs=["a.go"], asm_srcs=["add_amd64.s"]))
        self.assertIs(ctx.exception.stage, Stage.SYMABIS)
        self.assertIsInstance(ctx.exception.__cause__, PermissionError)
        self.assertEqual(runner.commands, [])

    def test_object_dir_under_a_file_fails_before_any_stage(self) -> None:
        blocker = self.base / "blocker"
        blocker.write_text("")
        runner = FailingRunner()
        with self.assertRaises(OSError):
            self.pipeline(runner).run(self.build(go_srcs=["a.go"], object_dir=blocker / "obj"))
        self.assertEqual(runner.commands, [])

    def test_link_only_for_binaries(self) -> None:
        runner = FailingRunner()
        result = self.pipeline(runner).run(
            self.build(
                import_path="",
                go_srcs=["main.go"],
                binary=self.base / "app",
                link_importcfg=self.base / "link.importcfg",
                linker_flags=["-lm"],
            )
        )
        self.assertEqual(result.stages, [Stage.COMPILE, Stage.LINK])
        self.assertEqual(result.binary, self.base / "app")
        link = runner.commands[-1].command
        self.assertEqual(link[link.index("-importcfg") + 1], str(self.base / "link.importcfg"))
        self.assertEqual(link[link.index("-extldflags") + 1], "-lm")

    def test_pkg_config_flags_are_appended(self) -> None:
        runner = FailingRunner(
            responses={
                ("pkg-config", "--cflags", "zlib"): "-I/usr/include/zlib",
                ("pkg-config", "--libs", "zlib"): "-lz",
            }
        )
        self.pipeline(runner).run(
            self.build(
                go_srcs=["main.go"],
                cgo_srcs=["native.go"],
                compiler_flags=["-DX"],
                linker_flags=["-lm"],
                pkg_configs=["zlib"],
                binary=self.base / "app",
            )
        )
        cgo = next(record.command for record in runner.iter_commands() if record.note == "cgo")
        self.assertEqual(cgo[-3:], ["-DX", "-I/usr/include/zlib", "native.go"])
        link = runner.commands[-1].command
        self.assertEqual(link[link.index("-extldflags") + 1], "-lm -lz")

    def test_pkg_config_failure_is_a_stage_error(self) -> None:
        runner = FailingRunner(marker="--cflags")
        with self.assertRaises(StageError) as ctx:
            self.pipeline(runner).run(self.build(cgo_srcs=["native.go"], pkg_configs=["zlib"]))
        self.assertIs(ctx.exception.stage, Stage.PKG_CONFIG)
        self.assertIsInstance(ctx.exception.__cause__, PkgConfigError)


class ArtifactLayoutTests(unittest.TestCase):
    def test_generated_names(self) -> None:
        layout = ArtifactLayout(Path("/obj"))
        self.assertEqual(layout.generated_go(["foo.go"]), ["_cgo_gotypes.go", "foo.cgo1.go"])
        self.assertEqual(layout.generated_c(["foo.go"]), ["_cgo_export.c", "foo.cgo2.c"])
        self.assertEqual(layout.generated_go([]), [])
        self.assertEqual(layout.object("dir/foo.c"), Path("/obj/foo.o"))

    def test_generated_c_collides_with_source(self) -> None:
        layout = ArtifactLayout(Path("/obj"))
        build = PackageBuild(
            import_path="x",
            source_dir=Path("/src"),
            object_dir=Path("/obj"),
            out=Path("/x.a"),
            importcfg=Path("/cfg"),
            cgo_srcs=["native.go"],
            c_srcs=["_cgo_export.c"],
        )
        with self.assertRaises(ArtifactCollisionError):
            layout.validate(build)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
