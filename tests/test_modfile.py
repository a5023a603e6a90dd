from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from please_go.modfile import ManifestError, parse_module, read_module


class ParseModuleTests(unittest.TestCase):
    def test_reads_module_requirements_and_replacements(self) -> None:
        module = parse_module(
            textwrap.dedent(
                """
                // Example module
                module example.com/app

                go 1.21

                require (
                    example.com/lib v1.2.3
                    golang.org/x/sys v0.10.0 // indirect
                )

                require github.com/pkg/errors v0.9.1

                replace (
                    example.com/old v1.0.0 => example.com/new v1.1.0
                    example.com/fork => ../fork
                )
                replace example.com/single => example.com/other v0.1.0

                exclude example.com/bad v0.0.1
                """
            )
        )
        self.assertEqual(module.path, "example.com/app")
        self.assertEqual(
            module.requirements,
            ("example.com/lib", "golang.org/x/sys", "github.com/pkg/errors"),
        )
        self.assertEqual(
            module.replace,
            {
                "example.com/old": "example.com/new",
                "example.com/fork": "../fork",
                "example.com/single": "example.com/other",
            },
        )

    def test_known_modules_end_with_own_identity(self) -> None:
        module = parse_module("module example.com/app\nrequire example.com/lib v1.0.0\n")
        self.assertEqual(
            module.known_modules(["extra.org/mod"]),
            ["extra.org/mod", "example.com/lib", "example.com/app"],
        )

    def test_quoted_module_path(self) -> None:
        module = parse_module('module "example.com/quoted"\n')
        self.assertEqual(module.path, "example.com/quoted")

    def test_missing_module_is_an_error(self) -> None:
        with self.assertRaises(ManifestError) as ctx:
            parse_module("go 1.21\n", path="x/go.mod")
        self.assertIn("missing module declaration", str(ctx.exception))
        self.assertIn("x/go.mod", str(ctx.exception))

    def test_unterminated_block_reports_line(self) -> None:
        with self.assertRaises(ManifestError) as ctx:
            parse_module("module a\nrequire (\n    b v1.0.0\n")
        self.assertEqual(ctx.exception.line, 2)

    def test_replace_without_arrow_is_an_error(self) -> None:
        with self.assertRaises(ManifestError):
            parse_module("module a\nreplace b c\n")

    def test_unknown_directives_are_ignored(self) -> None:
        module = parse_module(
            textwrap.dedent(
                """
                module example.com/app

                go 1.24

                require example.com/lib v1.0.0

                tool example.com/lib/cmd/gen

                tool (
                    example.com/lib/cmd/other
                    golang.org/x/tools/cmd/stringer
                )

                ignore ./node_modules
                """
            )
        )
        self.assertEqual(module.path, "example.com/app")
        self.assertEqual(module.requirements, ("example.com/lib",))
        self.assertEqual(module.replace, {})

    def test_unknown_block_must_still_be_closed(self) -> None:
        with self.assertRaises(ManifestError) as ctx:
            parse_module("module a\ntool (\n    b/cmd\n")
        self.assertEqual(ctx.exception.line, 2)


class ReadModuleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_missing_file_raises_manifest_error_with_path(self) -> None:
        path = self.root / "go.mod"
        with self.assertRaises(ManifestError) as ctx:
            read_module(path)
        self.assertEqual(ctx.exception.path, path)
        self.assertIsInstance(ctx.exception.__cause__, OSError)

    def test_reads_file(self) -> None:
        path = self.root / "go.mod"
        path.write_text("module example.com/app\n")
        self.assertEqual(read_module(path).path, "example.com/app")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
