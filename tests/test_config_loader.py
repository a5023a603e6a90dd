from __future__ import annotations

from pathlib import Path
import json
import tempfile
import textwrap
import unittest

from core.config_loader import ConfigError, find_config_file, load_config_file, merge_mappings, normalize_string_list
from please_go.config_loader import GenerateSettings, Settings, load_settings

try:  # PyYAML is optional
    import yaml  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency absent
    yaml = None


class SettingsLoaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_defaults_without_file(self) -> None:
        settings = load_settings(search_dir=self.root)
        self.assertEqual(settings, Settings())
        self.assertEqual(settings.generate.build_file_name, "BUILD")
        self.assertEqual(settings.generate.third_party_dir, "third_party/go")
        self.assertEqual(settings.toolchain.go_tool, "go")
        self.assertIsNone(settings.source)

    def test_reads_toml(self) -> None:
        path = self.root / "please_go.toml"
        path.write_text(
            textwrap.dedent(
                """
                [global]
                log_level = "DEBUG"

                [generate]
                build_file_name = "BUILD.plz"
                goos = "darwin"
                cgo_enabled = false
                tags = ["integration", " netgo "]
                go_release = 21

                [toolchain]
                cc_tool = "clang"
                """
            )
        )
        settings = load_settings(search_dir=self.root)
        self.assertEqual(settings.source, path)
        self.assertEqual(settings.global_config.log_level, "debug")
        self.assertEqual(settings.generate.build_file_name, "BUILD.plz")
        self.assertEqual(settings.generate.goos, "darwin")
        self.assertIsNone(settings.generate.goarch)
        self.assertIs(settings.generate.cgo_enabled, False)
        self.assertEqual(settings.generate.tags, ["integration", "netgo"])
        self.assertEqual(settings.generate.go_release, 21)
        self.assertEqual(settings.toolchain.cc_tool, "clang")
        self.assertEqual(settings.toolchain.go_tool, "go")

    def test_reads_json_from_explicit_path(self) -> None:
        path = self.root / "custom.json"
        path.write_text(json.dumps({"generate": {"third_party_dir": "vendor/go"}}))
        settings = load_settings(path)
        self.assertEqual(settings.generate.third_party_dir, "vendor/go")

    @unittest.skipIf(yaml is None, "PyYAML not installed")
    def test_reads_yaml(self) -> None:
        (self.root / "please_go.yaml").write_text("toolchain:\n  pkg_config_tool: pkgconf\n")
        self.assertEqual(load_settings(search_dir=self.root).toolchain.pkg_config_tool, "pkgconf")

    def test_unknown_keys_are_rejected(self) -> None:
        with self.assertRaises(ConfigError) as ctx:
            Settings.from_mapping({"generate": {"bulid_file_name": "BUILD"}})
        self.assertIn("Section [generate] contains unknown keys: bulid_file_name", str(ctx.exception))
        with self.assertRaises(ConfigError):
            Settings.from_mapping({"extra": {}})

    def test_section_must_be_mapping(self) -> None:
        with self.assertRaises(ConfigError):
            Settings.from_mapping({"toolchain": "go"})

    def test_multiple_formats_are_ambiguous(self) -> None:
        (self.root / "please_go.toml").write_text("")
        (self.root / "please_go.json").write_text("{}")
        with self.assertRaises(ConfigError):
            load_settings(search_dir=self.root)

    def test_generate_settings_from_empty_mapping(self) -> None:
        self.assertEqual(GenerateSettings.from_mapping({}), GenerateSettings())

    def test_value_coercion(self) -> None:
        settings = GenerateSettings.from_mapping({"cgo_enabled": "off", "go_release": "20", "tags": "netgo"})
        self.assertIs(settings.cgo_enabled, False)
        self.assertEqual(settings.go_release, 20)
        self.assertEqual(settings.tags, ["netgo"])
        with self.assertRaises(ConfigError):
            GenerateSettings.from_mapping({"go_release": "latest"})
        with self.assertRaises(ConfigError):
            GenerateSettings.from_mapping({"cgo_enabled": "maybe"})

    def test_invalid_log_level(self) -> None:
        with self.assertRaises(ConfigError):
            Settings.from_mapping({"global": {"log_level": "verbose"}})

    def test_overrides_win_over_file(self) -> None:
        (self.root / "please_go.json").write_text(
            json.dumps({"generate": {"goos": "darwin", "goarch": "arm64"}, "toolchain": {"go_tool": "go1.21"}})
        )
        settings = load_settings(search_dir=self.root, overrides={"generate": {"goos": "linux"}})
        self.assertEqual(settings.generate.goos, "linux")
        self.assertEqual(settings.generate.goarch, "arm64")
        self.assertEqual(settings.toolchain.go_tool, "go1.21")

    def test_malformed_file_reports_path(self) -> None:
        path = self.root / "please_go.toml"
        path.write_text("[generate\n")
        with self.assertRaises(ConfigError) as ctx:
            load_settings(search_dir=self.root)
        self.assertEqual(ctx.exception.path, path)
        self.assertIn(str(path), str(ctx.exception))


class ConfigHelperTests(unittest.TestCase):
    def test_unsupported_extension(self) -> None:
        with self.assertRaises(ConfigError):
            load_config_file(Path("settings.ini"))

    def test_find_config_file_returns_none(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            self.assertIsNone(find_config_file(Path(temp), "please_go"))

    def test_merge_mappings_is_deep(self) -> None:
        merged = merge_mappings({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}, "c": 4})
        self.assertEqual(merged, {"a": {"x": 1, "y": 3}, "b": 1, "c": 4})

    def test_normalize_string_list(self) -> None:
        self.assertEqual(normalize_string_list(" a "), ["a"])
        self.assertEqual(normalize_string_list(["a", "", " b"]), ["a", "b"])
        with self.assertRaises(ConfigError):
            normalize_string_list([1], field_name="tags")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
