"""
Git rule module.

Blocks git operations that destroy uncommitted work or rewrite shared
history: checkout/restore over local changes, reset --hard, force pushes to
protected branches, branch -D, stash drop/clear and clean -f.
"""

from __future__ import annotations

from collections.abc import Callable
from types import MappingProxyType

from safety_net.core.bash import is_flag, skip_flags
from safety_net.core.config import GitPolicy
from safety_net.core.decision import Decision, RuleMatch
from safety_net.rules import RuleContext, has_short_flag

# Git global flags that take an argument (need to skip the argument)
GLOBAL_FLAGS_WITH_ARG = frozenset({
    "-C", "-c", "--git-dir", "--work-tree", "--namespace",
    "--super-prefix", "--config-env",
})

PUSH_FLAGS_WITH_ARG = frozenset({
    "--repo", "-o", "--push-option", "--receive-pack", "--exec",
})

FORCE_PUSH_FLAGS = frozenset({"--force", "--force-with-lease"})


def split_subcommand(args: tuple[str, ...] | list[str]) -> tuple[str | None, list[str]]:
    """Return (subcommand, remaining args) after git's global flags."""
    i = skip_flags(args, GLOBAL_FLAGS_WITH_ARG, stop_at_double_dash=False)
    if i >= len(args):
        return None, []
    return args[i], list(args[i + 1 :])


def _positionals(args: list[str], flags_with_arg: frozenset[str] = frozenset()) -> list[str]:
    result = []
    i = 0
    while i < len(args):
        word = args[i]
        if word == "--":
            result.extend(args[i + 1 :])
            break
        if word in flags_with_arg:
            i += 2
            continue
        if not is_flag(word):
            result.append(word)
        i += 1
    return result


def _checkout(args: list[str], ctx: RuleContext) -> RuleMatch:
    if "--" in args:
        return Decision.block(
            "git.checkout",
            "git checkout -- <path> discards uncommitted changes",
        )
    if "--force" in args or has_short_flag(args, "f"):
        return Decision.block(
            "git.checkout.force",
            "git checkout --force discards uncommitted changes",
        )
    if _positionals(args, frozenset({"-b", "-B", "--orphan"})) == ["."]:
        return Decision.block(
            "git.checkout",
            "git checkout . discards uncommitted changes",
        )
    return None


def _restore(args: list[str], ctx: RuleContext) -> RuleMatch:
    staged = "--staged" in args or has_short_flag(args, "S")
    worktree = "--worktree" in args or has_short_flag(args, "W")
    if staged and not worktree:
        return None
    if not _positionals(args, frozenset({"-s", "--source"})):
        return None
    return Decision.block(
        "git.restore",
        "git restore discards uncommitted changes in the working tree",
    )


def _reset(args: list[str], ctx: RuleContext) -> RuleMatch:
    if "--hard" in args:
        return Decision.block(
            "git.reset.hard",
            "git reset --hard discards uncommitted changes",
        )
    return None


def _push_targets(refspecs: list[str], current_branch: str | None) -> list[tuple[str, bool, bool]]:
    """(branch, forced by '+', deleted) for each refspec."""
    targets = []
    for spec in refspecs:
        plus = spec.startswith("+")
        spec = spec.lstrip("+")
        deleted = False
        if ":" in spec:
            src, dst = spec.split(":", 1)
            deleted = src == ""
            dst = dst or src
        else:
            dst = spec
        dst = dst.removeprefix("refs/heads/")
        if dst == "HEAD":
            if current_branch is None:
                continue
            dst = current_branch
        if dst:
            targets.append((dst, plus, deleted))
    return targets


def _push(args: list[str], ctx: RuleContext) -> RuleMatch:
    policy: GitPolicy = ctx.config.git
    flags = [a for a in args if is_flag(a)]
    force = any(f == "-f" or f.split("=", 1)[0] in FORCE_PUSH_FLAGS for f in flags) or has_short_flag(
        flags, "f"
    )
    delete = "--delete" in flags or has_short_flag(flags, "d")

    if "--mirror" in flags:
        return Decision.block(
            "git.push.mirror",
            "git push --mirror overwrites and deletes every ref on the remote",
        )

    positionals = _positionals(args, PUSH_FLAGS_WITH_ARG)
    refspecs = positionals[1:]

    if force and ("--all" in flags or "--branches" in flags):
        return Decision.block(
            "git.push.force",
            "force push of all branches is blocked",
        )

    targets = _push_targets(refspecs, ctx.current_branch)
    if force and not refspecs and ctx.current_branch is not None:
        targets = [(ctx.current_branch, False, False)]

    for branch, plus, deleted in targets:
        if not policy.is_protected(branch):
            continue
        if deleted or delete:
            return Decision.block(
                "git.push.delete",
                f"deleting protected branch '{branch}' is blocked",
                matched_text=branch,
            )
        if force or plus:
            return Decision.block(
                "git.push.force",
                f"force push to protected branch '{branch}' is blocked",
                matched_text=branch,
            )
    return None


def _branch(args: list[str], ctx: RuleContext) -> RuleMatch:
    delete = "--delete" in args or has_short_flag(args, "d")
    force = "--force" in args or has_short_flag(args, "f")
    if has_short_flag(args, "D") or (delete and force):
        return Decision.block(
            "git.branch.force_delete",
            "git branch -D deletes a branch even if it is not merged",
        )
    return None


def _stash(args: list[str], ctx: RuleContext) -> RuleMatch:
    positionals = _positionals(args)
    action = positionals[0] if positionals else None
    if action == "drop":
        return Decision.block("git.stash.drop", "git stash drop permanently deletes stashed changes")
    if action == "clear":
        return Decision.block("git.stash.clear", "git stash clear permanently deletes all stashed changes")
    return None


def _clean(args: list[str], ctx: RuleContext) -> RuleMatch:
    if "--dry-run" in args or has_short_flag(args, "n"):
        return None
    if not ("--force" in args or has_short_flag(args, "f")):
        return None
    if any(has_short_flag(args, letter) for letter in "dxX"):
        return Decision.block(
            "git.clean.force",
            "git clean -f with -d/-x/-X permanently deletes untracked directories or ignored files",
        )
    return Decision.block("git.clean", "git clean -f permanently deletes untracked files")


SUBCOMMANDS: MappingProxyType[str, Callable[[list[str], RuleContext], RuleMatch]] = MappingProxyType({
    "checkout": _checkout,
    "restore": _restore,
    "reset": _reset,
    "push": _push,
    "branch": _branch,
    "stash": _stash,
    "clean": _clean,
})


def check(ctx: RuleContext) -> RuleMatch:
    if ctx.command != "git" or not ctx.config.git.block_destructive:
        return None
    subcommand, rest = split_subcommand(ctx.args)
    if subcommand is None:
        return None
    handler = SUBCOMMANDS.get(subcommand)
    if handler is None:
        return None
    match = handler(rest, ctx)
    return match.with_matched_text(ctx.segment.display) if match else None
