"""
Environment exposure rule module.

Blocks commands whose output is the process environment (and with it any
API keys exported into the agent's shell): printenv, bare env/set/export,
declare -x, shell history, /proc/<pid>/environ, ps with environment
columns, and container inspect/exec calls that print a container's env.
"""

from __future__ import annotations

import re

from safety_net.core.bash import is_assignment, is_flag, skip_flags
from safety_net.core.decision import Decision, RuleMatch
from safety_net.rules import RuleContext

PROC_ENVIRON_RE = re.compile(r"/proc/[^/\s]+/environ\b")

CONTAINER_CLIS = frozenset({"docker", "podman"})
COMPOSE_CLIS = frozenset({"docker-compose", "podman-compose"})
CONTAINER_GLOBAL_FLAGS_WITH_ARG = frozenset({
    "-c", "--config", "--context", "-H", "--host", "-l", "--log-level",
})
COMPOSE_FLAGS_WITH_ARG = frozenset({
    "-f", "--file", "-p", "--project-name", "--project-directory",
    "--profile", "--env-file",
})
ENV_PRINTERS = frozenset({"env", "printenv"})
PS_FLAGS_WITH_ARG = frozenset({
    "-u", "-U", "-C", "-p", "-o", "-O", "-G", "-g", "-t", "-q", "-s",
    "--user", "--User", "--group", "--Group", "--pid", "--ppid", "--sid",
    "--tty", "--format", "--sort",
})


def _block(rule_id: str, reason: str, ctx: RuleContext) -> Decision:
    return Decision.block(rule_id, reason, matched_text=ctx.segment.display)


def _only_flags(args: tuple[str, ...]) -> bool:
    return all(is_flag(a) for a in args)


def _declare(args: tuple[str, ...]) -> bool:
    """declare/typeset listing variables (not functions, not a definition)."""
    if not _only_flags(args):
        return False
    return not any("f" in a[1:] or "F" in a[1:] for a in args)


def _ps(args: tuple[str, ...]) -> bool:
    # BSD-style cluster without a dash: ps eww, ps auxe
    if args and not args[0].startswith("-") and args[0].isalpha() and "e" in args[0]:
        return True
    i = 0
    while i < len(args):
        word = args[i]
        if word == "-E":
            return True
        i += 2 if word in PS_FLAGS_WITH_ARG else 1
    return False


def _container(words: list[str]) -> tuple[str | None, list[str]]:
    """(subcommand, rest) for docker/podman, folding compose and container/image groups."""
    i = skip_flags(words, CONTAINER_GLOBAL_FLAGS_WITH_ARG)
    if i >= len(words):
        return None, []
    sub, rest = words[i], words[i + 1 :]
    if sub == "compose":
        return _compose(rest)
    if sub in ("container", "image") and rest:
        return rest[0], rest[1:]
    return sub, rest


def _compose(words: list[str]) -> tuple[str | None, list[str]]:
    i = skip_flags(words, COMPOSE_FLAGS_WITH_ARG)
    if i >= len(words):
        return None, []
    return words[i], words[i + 1 :]


def _container_check(ctx: RuleContext) -> RuleMatch:
    if ctx.command in CONTAINER_CLIS:
        sub, rest = _container(list(ctx.args))
    elif ctx.command in COMPOSE_CLIS:
        sub, rest = _compose(list(ctx.args))
    else:
        return None
    if sub == "inspect":
        return _block(
            "env.container_inspect",
            f"{ctx.command} inspect prints the container environment",
            ctx,
        )
    if sub in ("exec", "run") and any(w in ENV_PRINTERS for w in rest):
        return _block(
            "env.container_env",
            f"printing a container environment through {ctx.command} {sub} is blocked",
            ctx,
        )
    return None


def check(ctx: RuleContext) -> RuleMatch:
    if any(PROC_ENVIRON_RE.search(t.value) for t in ctx.segment.tokens):
        return _block("env.proc_environ", "reading /proc/<pid>/environ exposes process environment", ctx)

    command, args = ctx.command, ctx.args
    if command == "printenv":
        return _block("env.printenv", "printenv exposes environment variables", ctx)
    if command == "env" and all(is_flag(a) or is_assignment(a) for a in args):
        return _block("env.dump", "env without a command prints every environment variable", ctx)
    if command == "set" and not args:
        return _block("env.set", "set without arguments prints every shell variable", ctx)
    if command == "export" and all(a == "-p" for a in args):
        return _block("env.export", "export without arguments prints every exported variable", ctx)
    if command in ("declare", "typeset") and _declare(args):
        return _block("env.declare", f"{command} without a name prints shell variables", ctx)
    if command == "history" and all(a.isdigit() for a in args):
        return _block("env.history", "shell history may contain secrets typed on the command line", ctx)
    if command == "ps" and _ps(args):
        return _block("env.ps", "ps with environment output exposes process environments", ctx)
    return _container_check(ctx)
