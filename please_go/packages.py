"""Per-directory Go package discovery.

Only file headers are read: the package clause, the import declarations,
build constraints, ``#cgo`` directives in the ``import "C"`` preamble and
``//go:embed`` directives. The rules for which files belong to a package
follow ``go/build``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Sequence, Tuple
import json
import re
import shlex

from .constraints import BuildContext, ConstraintError


_C_EXTENSIONS = frozenset({".c"})
_CXX_EXTENSIONS = frozenset({".cc", ".cpp", ".cxx"})
_HEADER_EXTENSIONS = frozenset({".h", ".hh", ".hpp", ".hxx"})
_ASM_EXTENSIONS = frozenset({".s", ".S", ".sx"})
_CGO_VERBS = {
    "CFLAGS": "cgo_cflags",
    "CPPFLAGS": "cgo_cppflags",
    "CXXFLAGS": "cgo_cxxflags",
    "FFLAGS": "cgo_fflags",
    "LDFLAGS": "cgo_ldflags",
    "pkg-config": "cgo_pkg_config",
}
_EMBED_DIRECTIVE = re.compile(r"^\s*//go:embed(?:\s+(.*))?$", re.MULTILINE)
_EMBED_PATTERN = re.compile(r'"(?:[^"\\]|\\.)*"|`[^`]*`|\S+')


class DiscoveryError(Exception):
    """Raised when a directory cannot be turned into a package."""

    def __init__(self, path: Path, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


@dataclass(frozen=True)
class Package:
    dir: Path
    name: str
    go_files: Tuple[str, ...] = ()
    cgo_files: Tuple[str, ...] = ()
    c_files: Tuple[str, ...] = ()
    cxx_files: Tuple[str, ...] = ()
    h_files: Tuple[str, ...] = ()
    s_files: Tuple[str, ...] = ()
    imports: Tuple[str, ...] = ()
    embed_patterns: Tuple[str, ...] = ()
    cgo_cflags: Tuple[str, ...] = ()
    cgo_cppflags: Tuple[str, ...] = ()
    cgo_cxxflags: Tuple[str, ...] = ()
    cgo_fflags: Tuple[str, ...] = ()
    cgo_ldflags: Tuple[str, ...] = ()
    cgo_pkg_config: Tuple[str, ...] = ()
    ignored_files: Tuple[str, ...] = ()

    @property
    def is_command(self) -> bool:
        return self.name == "main"

    @property
    def has_sources(self) -> bool:
        return bool(self.go_files or self.cgo_files)


@dataclass(slots=True)
class _Token:
    kind: str
    value: str
    comments: List[Tuple[str, str]] = field(default_factory=list)


@dataclass(slots=True)
class _Import:
    path: str
    doc: List[Tuple[str, str]]


@dataclass(slots=True)
class GoFileHeader:
    package: str
    imports: List[_Import]
    constraint_comments: List[str]

    @property
    def import_paths(self) -> List[str]:
        return [spec.path for spec in self.imports]


def _unquote(literal: str) -> str:
    if literal.startswith("`"):
        return literal[1:-1]
    return json.loads(literal)


def _tokens(text: str, path: Path) -> Iterator[_Token]:
    position = 0
    length = len(text)
    comments: List[Tuple[str, str]] = []
    while position < length:
        char = text[position]
        if char in " \t\r\n;":
            position += 1
        elif text.startswith("//", position):
            end = text.find("\n", position)
            end = length if end < 0 else end
            comments.append(("line", text[position + 2:end]))
            position = end
        elif text.startswith("/*", position):
            end = text.find("*/", position + 2)
            if end < 0:
                raise DiscoveryError(path, "comment not terminated")
            comments.append(("block", text[position + 2:end]))
            position = end + 2
        elif char == '"':
            end = position + 1
            while end < length and text[end] != '"':
                if text[end] == "\n":
                    raise DiscoveryError(path, "string literal not terminated")
                end += 2 if text[end] == "\\" else 1
            if end >= length:
                raise DiscoveryError(path, "string literal not terminated")
            yield _Token("string", text[position:end + 1], comments)
            comments = []
            position = end + 1
        elif char == "`":
            end = text.find("`", position + 1)
            if end < 0:
                raise DiscoveryError(path, "raw string literal not terminated")
            yield _Token("string", text[position:end + 1], comments)
            comments = []
            position = end + 1
        elif char.isalpha() or char == "_":
            end = position + 1
            while end < length and (text[end].isalnum() or text[end] == "_"):
                end += 1
            yield _Token("ident", text[position:end], comments)
            comments = []
            position = end
        else:
            yield _Token("punct", char, comments)
            comments = []
            position += 1


def read_go_header(text: str, path: Path) -> GoFileHeader:
    """Read the package clause and import declarations of a Go source file."""
    tokens = _tokens(text.removeprefix("\ufeff"), path)

    def take() -> _Token | None:
        return next(tokens, None)

    token = take()
    if token is None or token.kind != "ident" or token.value != "package":
        raise DiscoveryError(path, "expected 'package' clause")
    constraint_comments = [body for style, body in token.comments if style == "line"]
    name = take()
    if name is None or name.kind != "ident":
        raise DiscoveryError(path, "expected package name")

    imports: List[_Import] = []
    token = take()
    while token is not None and token.kind == "ident" and token.value == "import":
        decl_doc = token.comments
        token = take()
        if token is not None and token.kind == "punct" and token.value == "(":
            token = take()
            group: List[_Import] = []
            while token is not None and not (token.kind == "punct" and token.value == ")"):
                spec, token = _import_spec(token, take, path)
                group.append(spec)
            if token is None:
                raise DiscoveryError(path, "import block not terminated")
            if len(group) == 1 and not group[0].doc:
                group[0].doc = decl_doc
            imports.extend(group)
            token = take()
        else:
            spec, token = _import_spec(token, take, path)
            if not spec.doc:
                spec.doc = decl_doc
            imports.append(spec)

    return GoFileHeader(package=name.value, imports=imports, constraint_comments=constraint_comments)


def _import_spec(token: _Token | None, take, path: Path) -> tuple[_Import, _Token | None]:
    if token is None:
        raise DiscoveryError(path, "unexpected end of file in import declaration")
    doc = token.comments
    if token.kind == "ident" or (token.kind == "punct" and token.value == "."):
        token = take()
    if token is None or token.kind != "string":
        raise DiscoveryError(path, "expected import path")
    try:
        import_path = _unquote(token.value)
    except ValueError as exc:
        raise DiscoveryError(path, f"invalid import path {token.value}") from exc
    return _Import(path=import_path, doc=doc), take()


def _leading_comment_lines(text: str) -> List[str]:
    lines: List[str] = []
    for raw in text.splitlines():
        stripped = raw.strip()
        if not stripped:
            continue
        if not stripped.startswith("//"):
            break
        lines.append(stripped[2:])
    return lines


def _doc_lines(doc: Sequence[Tuple[str, str]]) -> Iterator[str]:
    for style, body in doc:
        if style == "line":
            yield body
        else:
            yield from body.splitlines()


class PackageDiscoverer:
    """Builds a :class:`Package` for one directory under a :class:`BuildContext`."""

    def __init__(self, context: BuildContext | None = None) -> None:
        self.context = context or BuildContext()

    def should_build(self, comments: Sequence[str], path: Path) -> bool:
        go_build = [line for line in comments if line.startswith("go:build")]
        if go_build:
            if len(go_build) > 1:
                raise DiscoveryError(path, "multiple //go:build comments")
            expression = go_build[0][len("go:build"):]
            try:
                return self.context.match_expression(expression)
            except ConstraintError as exc:
                raise DiscoveryError(path, str(exc)) from exc
        plus_build = [
            line.strip()[len("+build"):]
            for line in comments
            if line.strip().startswith("+build")
        ]
        return self.context.match_plus_build(plus_build)

    def discover(self, directory: Path) -> Package | None:
        """Return the package in ``directory`` or ``None`` when it has no buildable Go sources."""
        try:
            entries = sorted(entry for entry in directory.iterdir() if entry.is_file())
        except OSError as exc:
            raise DiscoveryError(directory, f"cannot read directory: {exc}") from exc

        files: Dict[str, List[str]] = {
            "go_files": [], "cgo_files": [], "c_files": [], "cxx_files": [], "h_files": [], "s_files": [],
        }
        flags: Dict[str, List[str]] = {attr: [] for attr in _CGO_VERBS.values()}
        ignored: List[str] = []
        imports: set[str] = set()
        embeds: set[str] = set()
        package_name: str | None = None
        package_file: str | None = None

        for entry in entries:
            name = entry.name
            if name.startswith(("_", ".")):
                continue
            suffix = entry.suffix
            kind = self._classify(name, suffix)
            if kind is None:
                continue
            if name.endswith("_test.go") or not self.context.match_file_name(name):
                ignored.append(name)
                continue

            text = self._read(entry)
            if kind != "go_files":
                if self.should_build(_leading_comment_lines(text), entry):
                    files[kind].append(name)
                else:
                    ignored.append(name)
                continue

            header = read_go_header(text, entry)
            if not self.should_build(header.constraint_comments, entry) or header.package == "documentation":
                ignored.append(name)
                continue
            paths = header.import_paths
            is_cgo = "C" in paths
            if is_cgo and not self.context.cgo_enabled:
                ignored.append(name)
                continue

            if package_name is None:
                package_name, package_file = header.package, name
            elif header.package != package_name:
                raise DiscoveryError(
                    directory,
                    f"found packages {package_name} ({package_file}) and {header.package} ({name})",
                )

            imports.update(path for path in paths if path != "C")
            if is_cgo:
                files["cgo_files"].append(name)
                for spec in header.imports:
                    if spec.path == "C":
                        self._save_cgo(directory, entry, _doc_lines(spec.doc), flags)
            else:
                files["go_files"].append(name)
            if "embed" in paths:
                embeds.update(self._embed_patterns(text, entry))

        if not files["go_files"] and not files["cgo_files"]:
            return None

        return Package(
            dir=directory,
            name=package_name or "",
            imports=tuple(sorted(imports)),
            embed_patterns=tuple(sorted(embeds)),
            ignored_files=tuple(ignored),
            **{key: tuple(value) for key, value in files.items()},
            **{key: tuple(value) for key, value in flags.items()},
        )

    @staticmethod
    def _classify(name: str, suffix: str) -> str | None:
        if suffix == ".go":
            return "go_files"
        if suffix in _C_EXTENSIONS:
            return "c_files"
        if suffix in _CXX_EXTENSIONS:
            return "cxx_files"
        if suffix in _HEADER_EXTENSIONS:
            return "h_files"
        if suffix in _ASM_EXTENSIONS:
            return "s_files"
        return None

    @staticmethod
    def _read(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8").removeprefix("\ufeff")
        except (OSError, UnicodeDecodeError) as exc:
            raise DiscoveryError(path, f"cannot read source file: {exc}") from exc

    def _save_cgo(self, directory: Path, path: Path, lines, flags: Dict[str, List[str]]) -> None:
        for raw in lines:
            line = raw.strip()
            if len(line) < 5 or not line.startswith("#cgo") or line[4] not in " \t":
                continue
            head, colon, arguments = line[4:].strip().partition(":")
            fields = head.split()
            if not colon or not fields:
                raise DiscoveryError(path, f"invalid #cgo line: {line}")
            *conditions, verb = fields
            if conditions and not any(self.context.match_term(term) for term in conditions):
                continue
            if verb not in _CGO_VERBS:
                raise DiscoveryError(path, f"invalid #cgo verb: {line}")
            try:
                values = shlex.split(arguments)
            except ValueError as exc:
                raise DiscoveryError(path, f"invalid #cgo line: {line}") from exc
            flags[_CGO_VERBS[verb]].extend(value.replace("${SRCDIR}", str(directory)) for value in values)

    @staticmethod
    def _embed_patterns(text: str, path: Path) -> List[str]:
        patterns: List[str] = []
        for match in _EMBED_DIRECTIVE.finditer(text):
            arguments = match.group(1) or ""
            for token in _EMBED_PATTERN.findall(arguments):
                if token.startswith(("`", '"')):
                    try:
                        token = _unquote(token)
                    except ValueError as exc:
                        raise DiscoveryError(path, f"invalid quoted string in //go:embed: {token}") from exc
                patterns.append(token)
        return patterns


__all__ = ["DiscoveryError", "GoFileHeader", "Package", "PackageDiscoverer", "read_go_header"]
