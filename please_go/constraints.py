"""Build constraint evaluation following the rules of ``go/build``."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Iterable, List
import os
import platform
import re


KNOWN_OS = frozenset({
    "aix", "android", "darwin", "dragonfly", "freebsd", "hurd", "illumos", "ios", "js",
    "linux", "nacl", "netbsd", "openbsd", "plan9", "solaris", "wasip1", "windows", "zos",
})

KNOWN_ARCH = frozenset({
    "386", "amd64", "amd64p32", "arm", "armbe", "arm64", "arm64be", "loong64", "mips",
    "mipsle", "mips64", "mips64le", "mips64p32", "mips64p32le", "ppc", "ppc64", "ppc64le",
    "riscv", "riscv64", "s390", "s390x", "sparc", "sparc64", "wasm",
})

UNIX_OS = frozenset({
    "aix", "android", "darwin", "dragonfly", "freebsd", "hurd", "illumos", "ios", "linux",
    "netbsd", "openbsd", "solaris",
})

_OS_IMPLIES = {"android": "linux", "ios": "darwin", "illumos": "solaris"}

_MACHINE_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "armv6l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

_GO_VERSION_TAG = re.compile(r"^go1\.(\d+)$")
_EXPR_TOKEN = re.compile(r"\s*(\(|\)|!|&&|\|\||[\w.]+)")

DEFAULT_GO_RELEASE = 22


class ConstraintError(ValueError):
    """Raised for a malformed ``//go:build`` expression."""


def host_os() -> str:
    return platform.system().lower() or "linux"


def host_arch() -> str:
    machine = platform.machine().lower()
    return _MACHINE_ARCH.get(machine, machine)


@dataclass(frozen=True)
class BuildContext:
    """Target platform and tags that decide which files belong to a package."""

    goos: str = field(default_factory=host_os)
    goarch: str = field(default_factory=host_arch)
    cgo_enabled: bool = True
    tags: FrozenSet[str] = frozenset()
    go_release: int = DEFAULT_GO_RELEASE

    @classmethod
    def from_environment(cls, env: dict[str, str] | None = None, **overrides) -> "BuildContext":
        """Build a context honouring ``GOOS``, ``GOARCH`` and ``CGO_ENABLED``."""
        env = dict(os.environ) if env is None else env
        values = {
            "goos": env.get("GOOS") or host_os(),
            "goarch": env.get("GOARCH") or host_arch(),
            "cgo_enabled": env.get("CGO_ENABLED", "1") != "0",
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        if "tags" in values:
            values["tags"] = frozenset(values["tags"])
        return cls(**values)

    def match_tag(self, tag: str) -> bool:
        if tag in self.tags:
            return True
        if tag == self.goos or tag == self.goarch:
            return True
        if _OS_IMPLIES.get(self.goos) == tag:
            return True
        if tag == "unix":
            return self.goos in UNIX_OS
        if tag == "cgo":
            return self.cgo_enabled
        if tag == "gc":
            return True
        version = _GO_VERSION_TAG.match(tag)
        if version:
            return int(version.group(1)) <= self.go_release
        return False

    def match_file_name(self, name: str) -> bool:
        """Apply the ``*_GOOS``, ``*_GOARCH`` and ``*_GOOS_GOARCH`` naming rules."""
        stem, _, _ = name.partition(".")
        index = stem.find("_")
        if index < 0:
            return True
        parts = stem[index:].split("_")
        if parts[-1] == "test":
            parts = parts[:-1]
        count = len(parts)
        if count >= 2 and parts[-2] in KNOWN_OS and parts[-1] in KNOWN_ARCH:
            return self.match_tag(parts[-2]) and parts[-1] == self.goarch
        if count >= 1 and parts[-1] in KNOWN_OS:
            return self.match_tag(parts[-1])
        if count >= 1 and parts[-1] in KNOWN_ARCH:
            return parts[-1] == self.goarch
        return True

    def match_plus_build(self, lines: Iterable[str]) -> bool:
        """Evaluate legacy ``// +build`` lines: lines are ANDed, fields ORed, commas ANDed."""
        for line in lines:
            if not any(self.match_term(term) for term in line.split()):
                return False
        return True

    def match_term(self, term: str) -> bool:
        """Match one comma-joined term such as ``linux,!arm64``."""
        return all(self._match_negatable(part) for part in term.split(","))

    def _match_negatable(self, tag: str) -> bool:
        if tag.startswith("!"):
            return not self.match_tag(tag[1:])
        return self.match_tag(tag)

    def match_expression(self, expression: str) -> bool:
        return parse_expression(expression)(self.match_tag)


Evaluator = Callable[[Callable[[str], bool]], bool]


def _tokenize(expression: str) -> List[str]:
    tokens: List[str] = []
    position = 0
    text = expression.rstrip()
    while position < len(text):
        match = _EXPR_TOKEN.match(text, position)
        if not match:
            raise ConstraintError(f"unexpected character in build constraint: {text[position:]!r}")
        tokens.append(match.group(1))
        position = match.end()
    return tokens


class _ExpressionParser:
    def __init__(self, expression: str) -> None:
        self._expression = expression
        self._tokens = _tokenize(expression)
        self._position = 0

    def _peek(self) -> str | None:
        return self._tokens[self._position] if self._position < len(self._tokens) else None

    def _take(self) -> str:
        token = self._peek()
        if token is None:
            raise ConstraintError(f"unexpected end of build constraint: {self._expression!r}")
        self._position += 1
        return token

    def parse(self) -> Evaluator:
        evaluator = self._or()
        if self._peek() is not None:
            raise ConstraintError(f"unexpected token {self._peek()!r} in build constraint: {self._expression!r}")
        return evaluator

    def _or(self) -> Evaluator:
        operands = [self._and()]
        while self._peek() == "||":
            self._take()
            operands.append(self._and())
        if len(operands) == 1:
            return operands[0]
        return lambda match: any(operand(match) for operand in operands)

    def _and(self) -> Evaluator:
        operands = [self._not()]
        while self._peek() == "&&":
            self._take()
            operands.append(self._not())
        if len(operands) == 1:
            return operands[0]
        return lambda match: all(operand(match) for operand in operands)

    def _not(self) -> Evaluator:
        if self._peek() == "!":
            self._take()
            operand = self._not()
            return lambda match: not operand(match)
        return self._atom()

    def _atom(self) -> Evaluator:
        token = self._take()
        if token == "(":
            inner = self._or()
            if self._take() != ")":
                raise ConstraintError(f"missing ) in build constraint: {self._expression!r}")
            return inner
        if token in {")", "&&", "||"}:
            raise ConstraintError(f"unexpected token {token!r} in build constraint: {self._expression!r}")
        return lambda match: match(token)


def parse_expression(expression: str) -> Evaluator:
    """Compile a ``//go:build`` expression into a callable taking a tag matcher."""
    return _ExpressionParser(expression).parse()


__all__ = [
    "BuildContext",
    "ConstraintError",
    "KNOWN_ARCH",
    "KNOWN_OS",
    "UNIX_OS",
    "host_arch",
    "host_os",
    "parse_expression",
]
