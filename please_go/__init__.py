"""Go rule generation and toolchain orchestration for the Please build system."""

from .generate import Generator
from .imports import ImportResolver, ResolutionCache
from .pipeline import PackageBuild, ToolchainPipeline
from .rules import Rule, RuleKind, RuleSynthesizer
from .toolchain import Toolchain

__all__ = [
    "Generator",
    "ImportResolver",
    "PackageBuild",
    "ResolutionCache",
    "Rule",
    "RuleKind",
    "RuleSynthesizer",
    "Toolchain",
    "ToolchainPipeline",
]
