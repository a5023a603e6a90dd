"""Resolution of Go import paths to build target references."""
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Sequence
import posixpath
import threading


DEFAULT_THIRD_PARTY_DIR = "third_party/go"


class ReplaceCycleError(ValueError):
    """Raised when replace directives redirect an import path back onto itself."""

    def __init__(self, chain: Sequence[str]):
        super().__init__("replace directives form a cycle: " + " => ".join(chain))
        self.chain = tuple(chain)


class ResolutionCache:
    """Import path to target reference map shared by every resolver call of a run.

    Reads and writes take a lock, so resolution may run from several threads.
    Only successful resolutions are stored.
    """

    def __init__(self) -> None:
        self._targets: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, import_path: str) -> str | None:
        with self._lock:
            return self._targets.get(import_path)

    def put(self, import_path: str, target: str) -> str:
        """Store ``target`` unless a value is already present; return the stored value."""
        with self._lock:
            return self._targets.setdefault(import_path, target)

    def __contains__(self, import_path: object) -> bool:
        with self._lock:
            return import_path in self._targets

    def __len__(self) -> int:
        with self._lock:
            return len(self._targets)

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._targets)


def subrepo_name(module: str) -> str:
    return module.replace("/", "_")


class ImportResolver:
    """Maps import paths to targets by replace directive and longest module prefix.

    ``modules`` is searched in order; a candidate module is any entry the import
    path starts with, and the longest one wins. Equal-length candidates are the
    same string, so the first one encountered is used. Imports matching
    ``local_module`` resolve to in-tree labels; every other module resolves into
    its subrepo under ``third_party_dir``.
    """

    def __init__(
        self,
        modules: Iterable[str],
        *,
        replace: Mapping[str, str] | None = None,
        cache: ResolutionCache | None = None,
        local_module: str | None = None,
        third_party_dir: str = DEFAULT_THIRD_PARTY_DIR,
    ) -> None:
        self._modules: List[str] = [module for module in modules if module]
        self._replace: Dict[str, str] = dict(replace or {})
        self.cache = cache if cache is not None else ResolutionCache()
        self._local_module = local_module
        self._third_party_dir = third_party_dir.strip("/")

    @property
    def modules(self) -> List[str]:
        return list(self._modules)

    def resolve(self, import_path: str) -> str | None:
        """Return the target for ``import_path`` or ``None`` when no module provides it."""
        return self._resolve(import_path, [])

    def _resolve(self, import_path: str, chain: List[str]) -> str | None:
        cached = self.cache.get(import_path)
        if cached is not None:
            return cached

        replacement = self._replace.get(import_path)
        if replacement is not None:
            if replacement in chain or replacement == import_path:
                raise ReplaceCycleError([*chain, import_path, replacement])
            target = self._resolve(replacement, [*chain, import_path])
            if target is None:
                return None
            return self.cache.put(import_path, target)

        module = self.match_module(import_path)
        if module is None:
            return None
        return self.cache.put(import_path, self._target(module, import_path))

    def match_module(self, import_path: str) -> str | None:
        """Return the longest known module that ``import_path`` starts with."""
        best: str | None = None
        for module in self._modules:
            if import_path.startswith(module) and (best is None or len(module) > len(best)):
                best = module
        return best

    def _target(self, module: str, import_path: str) -> str:
        package = import_path[len(module):].removeprefix("/")
        name = posixpath.basename(package) if package else posixpath.basename(module)
        if module == self._local_module:
            return f"//{package}:{name}"
        return f"///{self._third_party_dir}/{subrepo_name(module)}//{package}:{name}"


__all__ = [
    "DEFAULT_THIRD_PARTY_DIR",
    "ImportResolver",
    "ReplaceCycleError",
    "ResolutionCache",
    "subrepo_name",
]
