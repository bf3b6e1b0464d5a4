"""
uv rule module.

``uv run --with`` and ``uv pip install`` put packages into an environment
without recording them in pyproject.toml. They are not dangerous, so they
Ask instead of Block and point at ``uv add``.
"""

from __future__ import annotations

from safety_net.core.bash import is_flag
from safety_net.core.decision import Decision, RuleMatch
from safety_net.rules import RuleContext

SUGGESTION = "Use 'uv add <package>' to declare dependencies in pyproject.toml"

GLOBAL_FLAGS_WITH_ARG = frozenset({
    "--directory", "--project", "--config-file", "--cache-dir", "--color",
    "-p", "--python",
})

WITH_FLAGS = frozenset({"--with", "--with-editable", "--with-requirements"})

RUN_FLAGS_WITH_ARG = WITH_FLAGS | GLOBAL_FLAGS_WITH_ARG | frozenset({
    "--package", "--extra", "--group", "--env-file", "--index",
})


def _run_flags(args: list[str]) -> list[str]:
    """uv run's own flags: everything before the command it runs."""
    flags = []
    for word in args:
        if not is_flag(word) and not (flags and flags[-1] in RUN_FLAGS_WITH_ARG):
            break
        flags.append(word)
    return flags


def check(ctx: RuleContext) -> RuleMatch:
    if ctx.command != "uv":
        return None
    args = list(ctx.args)
    i = 0
    while i < len(args) and is_flag(args[i]):
        i += 2 if args[i] in GLOBAL_FLAGS_WITH_ARG else 1
    if i >= len(args):
        return None
    subcommand, rest = args[i], args[i + 1 :]

    if subcommand == "run" and any(f.startswith("--with") for f in _run_flags(rest)):
        return Decision.ask(
            "uv.run.with",
            "uv run --with installs packages without recording them in pyproject.toml",
            matched_text=ctx.segment.display,
            suggestion=SUGGESTION,
        )
    if subcommand == "pip" and rest[:1] == ["install"]:
        return Decision.ask(
            "uv.pip.install",
            "uv pip install installs packages without recording them in pyproject.toml",
            matched_text=ctx.segment.display,
            suggestion=SUGGESTION,
        )
    return None
