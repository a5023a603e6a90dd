"""Rendering of BUILD files and the plugin configuration file."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from .rules import Rule


DEFAULT_SUBINCLUDE = "///go//build_defs:go"
PUBLIC_VISIBILITY = ("PUBLIC",)
_INDENT = "    "


def quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def format_list(values: Sequence[str], *, depth: int = 1) -> str:
    """Inline lists of up to one element, otherwise one element per line."""
    if len(values) <= 1:
        return "[" + ", ".join(quote(value) for value in values) + "]"
    inner = _INDENT * (depth + 1)
    lines = ["["]
    lines.extend(f"{inner}{quote(value)}," for value in values)
    lines.append(f"{_INDENT * depth}]")
    return "\n".join(lines)


def rule_attributes(rule: Rule, *, visibility: Sequence[str] = PUBLIC_VISIBILITY) -> List[Tuple[str, str]]:
    """Attribute name and rendered value pairs in emission order; empty attributes are omitted."""
    attributes: List[Tuple[str, str]] = [("name", quote(rule.name))]
    if rule.cgo_srcs:
        attributes.append(("srcs", format_list(rule.cgo_srcs)))
        if rule.srcs:
            attributes.append(("go_srcs", format_list(rule.srcs)))
    else:
        attributes.append(("srcs", format_list(rule.srcs)))

    for key, values in (
        ("deps", rule.deps),
        ("pkg_config", rule.pkg_configs),
        ("compiler_flags", rule.compiler_flags),
        ("linker_flags", rule.linker_flags),
        ("hdrs", rule.hdrs),
        ("asm_srcs", rule.asm_srcs),
    ):
        if values:
            attributes.append((key, format_list(values)))

    if rule.embed_patterns:
        attributes.append(("resources", f"glob({format_list(rule.embed_patterns)})"))
    attributes.append(("visibility", format_list(list(visibility))))
    return attributes


def render_rule(rule: Rule, *, visibility: Sequence[str] = PUBLIC_VISIBILITY) -> str:
    lines = [f"{rule.kind.value}("]
    for key, value in rule_attributes(rule, visibility=visibility):
        lines.append(f"{_INDENT}{key} = {value},")
    lines.append(")")
    return "\n".join(lines)


def render_build_file(
    rules: Iterable[Rule],
    *,
    subinclude: str = DEFAULT_SUBINCLUDE,
    visibility: Sequence[str] = PUBLIC_VISIBILITY,
) -> str:
    blocks = [f"subinclude({quote(subinclude)})"]
    blocks.extend(render_rule(rule, visibility=visibility) for rule in rules)
    return "\n\n".join(blocks) + "\n"


def write_build_file(
    path: Path,
    rules: Iterable[Rule],
    *,
    subinclude: str = DEFAULT_SUBINCLUDE,
    visibility: Sequence[str] = PUBLIC_VISIBILITY,
) -> Path:
    path.write_text(render_build_file(rules, subinclude=subinclude, visibility=visibility), encoding="utf-8")
    return path


def render_plugin_config(*, module_path: str, plugin_name: str = "go", plugin_target: str = "@//plugins:go") -> str:
    return "\n".join([
        f'[Plugin "{plugin_name}"]',
        f"Target={plugin_target}",
        f"ImportPath={module_path}",
    ]) + "\n"


__all__ = [
    "DEFAULT_SUBINCLUDE",
    "PUBLIC_VISIBILITY",
    "format_list",
    "quote",
    "render_build_file",
    "render_plugin_config",
    "render_rule",
    "rule_attributes",
    "write_build_file",
]
