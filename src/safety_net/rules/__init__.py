"""
Built-in semantic rule modules.

Each module exports:
- check(ctx: RuleContext) -> RuleMatch - a Decision (block or ask) or None

Modules run in the fixed order of RULE_MODULE_NAMES; the first match wins.
The set is closed: there is no plugin mechanism, only configuration.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from functools import cached_property, lru_cache
from typing import Protocol

from safety_net.core.bash import command_name, is_flag
from safety_net.core.config import Config
from safety_net.core.decision import RuleMatch
from safety_net.core.request import ToolKind
from safety_net.core.segmenter import Segment
from safety_net.core.wrappers import unwrap

RULE_MODULE_NAMES = (
    "git",
    "rm",
    "find",
    "xargs",
    "parallel",
    "heroku",
    "aws",
    "gcloud",
    "uv",
    "manifests",
    "environment",
)

# Commands that destroy files they are given
DESTRUCTIVE_COMMANDS = frozenset({"rm", "unlink", "shred", "rmdir"})


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule module may look at. No I/O happens past this point."""

    segment: Segment
    config: Config
    tool: ToolKind = ToolKind.BASH
    cwd: str = "/"
    current_branch: str | None = None
    # The segment as written, before wrappers were stripped
    outer: Segment | None = None

    @property
    def words(self) -> tuple[str, ...]:
        return self.segment.words

    @cached_property
    def command(self) -> str | None:
        """Bare name of the leading command (``/bin/rm`` -> ``rm``)."""
        first = self.segment.command
        return command_name(first) if first is not None else None

    @property
    def args(self) -> tuple[str, ...]:
        return self.segment.args


class RuleModule(Protocol):
    """Protocol for rule modules."""

    def check(self, ctx: RuleContext) -> RuleMatch:
        """Return a Decision when this module's decision table matches, else None."""
        ...


@lru_cache(maxsize=1)
def get_rule_modules() -> tuple[RuleModule, ...]:
    """Load the built-in rule modules, in evaluation order."""
    return tuple(
        importlib.import_module(f"safety_net.rules.{name}") for name in RULE_MODULE_NAMES
    )


def inner_command(words: list[str] | tuple[str, ...], depth: int = 0) -> Segment | None:
    """Unwrap a command given as a word list, e.g. the arguments of find -exec."""
    if not words:
        return None
    return unwrap(Segment.from_words(words, depth=depth + 1), depth + 1)


def destructive_name(segment: Segment | None) -> str | None:
    """The destructive command a segment runs (rm, unlink, ...), if any."""
    if segment is None or segment.command is None:
        return None
    name = command_name(segment.command)
    return name if name in DESTRUCTIVE_COMMANDS else None


def has_short_flag(args: list[str] | tuple[str, ...], letter: str) -> bool:
    """Whether ``letter`` appears in any short option cluster (-rf, -fdx, ...)."""
    return any(is_flag(a) and not a.startswith("--") and letter in a[1:] for a in args)


def is_recursive(args: list[str] | tuple[str, ...]) -> bool:
    return "--recursive" in args or has_short_flag(args, "r") or has_short_flag(args, "R")
