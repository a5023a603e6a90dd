"""Lax reader for ``go.mod`` module manifests."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple
import json
import re


_TOKEN_PATTERN = re.compile(r'"(?:[^"\\]|\\.)*"|`[^`]*`|=>|[^\s"`]+')


class ManifestError(Exception):
    """Raised when a module manifest cannot be read or is malformed."""

    def __init__(self, path: Path | str, message: str, *, line: int | None = None):
        location = f"{path}:{line}" if line is not None else str(path)
        super().__init__(f"{location}: {message}")
        self.path = Path(path)
        self.line = line


@dataclass(frozen=True)
class Module:
    """Identity, requirements and replace directives of one Go module."""

    path: str
    requirements: Tuple[str, ...] = ()
    replace: Dict[str, str] = field(default_factory=dict)

    def known_modules(self, extra: Iterable[str] = ()) -> List[str]:
        """Module paths import resolution may match, ending with this module."""
        return [*extra, *self.requirements, self.path]


def _unquote(token: str) -> str:
    if token.startswith("`") and token.endswith("`"):
        return token[1:-1]
    if token.startswith('"'):
        return json.loads(token)
    return token


def _strip_comment(line: str) -> str:
    # Module paths never contain "//"; the first one outside quotes starts a comment.
    in_quote: str | None = None
    for index, char in enumerate(line):
        if in_quote:
            if char == in_quote:
                in_quote = None
            continue
        if char in "\"`":
            in_quote = char
        elif line.startswith("//", index):
            return line[:index]
    return line


def _tokenize(line: str) -> List[str]:
    return _TOKEN_PATTERN.findall(_strip_comment(line))


class _ManifestParser:
    def __init__(self, path: Path) -> None:
        self._path = path
        self.module: str | None = None
        self.requirements: List[str] = []
        self.replace: Dict[str, str] = {}

    def fail(self, message: str, line: int) -> ManifestError:
        return ManifestError(self._path, message, line=line)

    def parse(self, text: str) -> Module:
        block: str | None = None
        block_start = 0
        for number, raw in enumerate(text.splitlines(), start=1):
            tokens = _tokenize(raw)
            if not tokens:
                continue
            if block is not None:
                if tokens == [")"]:
                    block = None
                    continue
                self._directive(block, tokens, number)
                continue
            verb, args = tokens[0], tokens[1:]
            if args == ["("]:
                block, block_start = verb, number
                continue
            self._directive(verb, args, number)

        if block is not None:
            raise self.fail(f"unterminated {block} block", block_start)
        if not self.module:
            raise ManifestError(self._path, "missing module declaration")
        return Module(path=self.module, requirements=tuple(self.requirements), replace=dict(self.replace))

    def _directive(self, verb: str, args: Sequence[str], line: int) -> None:
        try:
            self._apply(verb, args, line)
        except json.JSONDecodeError as exc:
            raise self.fail(f"invalid quoted string: {exc.msg}", line) from exc

    def _apply(self, verb: str, args: Sequence[str], line: int) -> None:
        # go, toolchain, tool, ignore, exclude, retract, godebug and future verbs are skipped.
        if verb == "module":
            if len(args) != 1:
                raise self.fail("usage: module module/path", line)
            if self.module is not None:
                raise self.fail("repeated module statement", line)
            self.module = _unquote(args[0])
        elif verb == "require":
            if len(args) != 2:
                raise self.fail("usage: require module/path v1.2.3", line)
            self.requirements.append(_unquote(args[0]))
        elif verb == "replace":
            self._replace(args, line)

    def _replace(self, args: Sequence[str], line: int) -> None:
        if "=>" not in args:
            raise self.fail("usage: replace module/path [v1.2.3] => other/module v1.4", line)
        arrow = list(args).index("=>")
        old, new = args[:arrow], args[arrow + 1:]
        if len(old) not in (1, 2) or len(new) not in (1, 2):
            raise self.fail("usage: replace module/path [v1.2.3] => other/module v1.4", line)
        self.replace[_unquote(old[0])] = _unquote(new[0])


def parse_module(text: str, *, path: Path | str = "go.mod") -> Module:
    """Parse manifest ``text``; ``path`` is only used in error messages."""
    return _ManifestParser(Path(path)).parse(text)


def read_module(path: Path) -> Module:
    """Read and parse the manifest at ``path``."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestError(path, f"cannot read module manifest: {exc}") from exc
    return parse_module(text, path=path)


__all__ = ["ManifestError", "Module", "parse_module", "read_module"]
