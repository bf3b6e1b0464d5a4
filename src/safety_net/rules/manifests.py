"""
Dependency manifest rule module.

Dependency files (Cargo.toml, pyproject.toml, package.json, ...) should
change through the package manager, so writing one by hand asks the user
first. Bash writes are caught through output redirects, tee and sed -i;
Edit and Write requests go through check_path.
"""

from __future__ import annotations

from safety_net.core.bash import is_flag
from safety_net.core.config import Config
from safety_net.core.decision import Decision, RuleMatch
from safety_net.core.request import ToolKind
from safety_net.core.segmenter import is_output_redirect
from safety_net.rules import RuleContext, has_short_flag

SED_SCRIPT_FLAGS = frozenset({"-e", "--expression", "-f", "--file"})


def _ask(rule_id: str, path: str, verb: str, config: Config) -> Decision:
    return Decision.ask(
        rule_id,
        f"{verb} dependency manifest '{path}' directly",
        matched_text=path,
        suggestion=config.dependencies.suggestion,
    )


def _sed_files(args: tuple[str, ...]) -> list[str]:
    """File operands of sed: positionals after the script."""
    positionals = []
    script_given = False
    i = 0
    while i < len(args):
        word = args[i]
        if word in SED_SCRIPT_FLAGS:
            script_given = True
            i += 2
            continue
        if not is_flag(word):
            positionals.append(word)
        i += 1
    return positionals if script_given else positionals[1:]


def _written_paths(ctx: RuleContext) -> list[tuple[str, str]]:
    """(path, how) for every file the segment writes to."""
    written = [
        (target, "dependencies.redirect")
        for op, target in ctx.segment.redirects
        if target is not None and is_output_redirect(op)
    ]
    if ctx.command == "tee":
        written += [(a, "dependencies.tee") for a in ctx.args if not is_flag(a)]
    elif ctx.command == "sed":
        in_place = any(a.startswith("--in-place") for a in ctx.args) or has_short_flag(ctx.args, "i")
        if in_place:
            written += [(a, "dependencies.sed") for a in _sed_files(ctx.args)]
    return written


def check(ctx: RuleContext) -> RuleMatch:
    policy = ctx.config.dependencies
    if not policy.enabled:
        return None
    for path, rule_id in _written_paths(ctx):
        if policy.matches(path):
            return _ask(rule_id, path, "modifying", ctx.config)
    return None


def check_path(path: str, tool: ToolKind, config: Config) -> RuleMatch:
    """Ask before an Edit or Write tool touches a dependency manifest."""
    if not config.dependencies.enabled or tool not in (ToolKind.EDIT, ToolKind.WRITE):
        return None
    if config.dependencies.matches(path) is None:
        return None
    if tool is ToolKind.EDIT:
        return _ask("dependencies.edit", path, "editing", config)
    return _ask("dependencies.write", path, "overwriting", config)
