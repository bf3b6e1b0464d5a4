"""
rm rule module.

Resolves every path operand of rm (and unlink, shred, rmdir) against the
working directory, lexically: ``~`` and ``$HOME`` are expanded and ``.``/``..``
collapsed, but the filesystem is never touched, so symlinks are not
followed. A path is blocked when it is a system directory, escapes the
working directory, or climbs above it further than allowed; paths strictly
inside an allowed location (/tmp, /var/tmp by default) are always fine.
"""

from __future__ import annotations

import posixpath

from safety_net.core.bash import is_flag
from safety_net.core.config import RmPolicy
from safety_net.core.decision import Decision, RuleMatch
from safety_net.rules import DESTRUCTIVE_COMMANDS, RuleContext

SHRED_FLAGS_WITH_ARG = frozenset({"-n", "--iterations", "-s", "--size", "--random-source"})

GLOB_CHARS = frozenset("*?[")


def operands(command: str, args: tuple[str, ...] | list[str]) -> list[str]:
    """Path operands of a delete command, skipping its flags."""
    flags_with_arg = SHRED_FLAGS_WITH_ARG if command == "shred" else frozenset()
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


def _expand_home(path: str) -> str:
    for prefix in ("${HOME}", "$HOME"):
        if path == prefix or path.startswith(prefix + "/"):
            path = "~" + path[len(prefix) :]
            break
    return posixpath.expanduser(path)


def _normalize(path: str) -> str:
    path = posixpath.normpath(path)
    # normpath keeps a leading "//"
    if path.startswith("//"):
        path = "/" + path.lstrip("/")
    return path


def resolve(path: str, cwd: str) -> tuple[str, bool]:
    """Lexically resolve ``path`` against ``cwd``.

    Returns (resolved path, contents_only). A glob component resolves to its
    parent directory with contents_only set: ``/tmp/*`` -> ("/tmp", True).
    """
    expanded = _expand_home(path)
    if not posixpath.isabs(expanded):
        expanded = posixpath.join(cwd, expanded)
    parts = expanded.split("/")
    for i, part in enumerate(parts):
        if GLOB_CHARS & set(part):
            return _normalize("/".join(parts[:i]) or "/"), True
    return _normalize(expanded), False


def parent_depth(path: str) -> int:
    """How many levels above its starting directory a relative path climbs."""
    if posixpath.isabs(_expand_home(path)):
        return 0
    depth = lowest = 0
    for part in path.split("/"):
        if part == "..":
            depth -= 1
            lowest = min(lowest, depth)
        elif part not in ("", "."):
            depth += 1
    return -lowest


def _within(path: str, root: str, strict: bool) -> bool:
    if root == "/":
        return path != "/" if strict else True
    if path == root:
        return not strict
    return path.startswith(root.rstrip("/") + "/")


def check_path(operand: str, cwd: str, policy: RmPolicy) -> RuleMatch:
    """Judge one rm operand. Returns a block Decision or None."""
    cwd = _normalize(cwd)
    resolved, contents_only = resolve(operand, cwd)

    for allowed in policy.allowed_paths:
        allowed = _normalize(allowed)
        if _within(resolved, allowed, strict=True) or (contents_only and resolved == allowed):
            return None

    home = _normalize(posixpath.expanduser("~"))
    if resolved in policy.system_dirs or resolved == home:
        return Decision.block(
            "rm.dangerous_path",
            f"rm targets system directory '{resolved}'",
            matched_text=operand,
        )

    if resolved != cwd and _within(cwd, resolved, strict=True):
        return Decision.block(
            "rm.cwd",
            f"rm would delete '{resolved}', which contains the working directory",
            matched_text=operand,
        )

    if parent_depth(operand) > policy.max_parent_depth and not _within(resolved, cwd, strict=False):
        return Decision.block(
            "rm.parent_traversal",
            f"rm climbs {parent_depth(operand)} level(s) above the working directory to '{resolved}'",
            matched_text=operand,
        )

    if policy.block_outside_cwd and not _within(resolved, cwd, strict=False):
        return Decision.block(
            "rm.outside_cwd",
            f"rm outside the working directory is blocked: '{resolved}'",
            details=f"working directory is {cwd}",
            matched_text=operand,
        )
    return None


def check(ctx: RuleContext) -> RuleMatch:
    if ctx.command not in DESTRUCTIVE_COMMANDS:
        return None
    for operand in operands(ctx.command, ctx.args):
        match = check_path(operand, ctx.cwd, ctx.config.rm)
        if match is not None:
            return match
    return None
