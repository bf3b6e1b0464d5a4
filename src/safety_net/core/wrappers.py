"""
Wrapper stripping.

Wrappers are commands that run another command taken from their own
arguments: sudo, env, nice, timeout, xargs -I, and shell re-entry such as
``bash -c '...'``. Stripping them exposes the real command to the rule
modules, so ``sudo env bash -c "cat .env"`` is judged as ``cat .env``.

Recursion is bounded by an explicit depth counter. At the cap the partially
unwrapped segment is returned unchanged; it is never an error.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from types import MappingProxyType

import structlog

from safety_net.core.bash import command_name, is_assignment, is_flag, skip_flags
from safety_net.core.segmenter import Segment, split_command

log = structlog.get_logger(__name__)

MAX_UNWRAP_DEPTH = 5

# Reserved words that may precede the real command word
SHELL_KEYWORDS = frozenset({"!", "{", "if", "then", "elif", "else", "do", "while", "until"})

SHELLS = frozenset({"bash", "sh", "zsh", "dash", "ksh"})
SHELL_FLAGS_WITH_ARG = frozenset({"-o", "+o", "-O", "+O", "--rcfile", "--init-file"})

SUDO_FLAGS_WITH_ARG = frozenset({
    "-u", "--user",
    "-g", "--group",
    "-C", "--close-from",
    "-D", "--chdir",
    "-h", "--host",
    "-p", "--prompt",
    "-r", "--role",
    "-t", "--type",
    "-U", "--other-user",
    "-T", "--command-timeout",
})
DOAS_FLAGS_WITH_ARG = frozenset({"-u", "-C"})
ENV_FLAGS_WITH_ARG = frozenset({"-u", "--unset", "-C", "--chdir"})
NICE_FLAGS_WITH_ARG = frozenset({"-n", "--adjustment"})
IONICE_FLAGS_WITH_ARG = frozenset({"-c", "--class", "-n", "--classdata", "-p", "--pid", "-P", "--pgid", "-u", "--uid"})
TIME_FLAGS_WITH_ARG = frozenset({"-f", "--format", "-o", "--output"})
TIMEOUT_FLAGS_WITH_ARG = frozenset({"-s", "--signal", "-k", "--kill-after"})
TRACE_FLAGS_WITH_ARG = frozenset({"-e", "-o", "-p", "-s", "-u", "-E", "-a", "-n", "-A", "-P", "-X"})
WATCH_FLAGS_WITH_ARG = frozenset({"-n", "--interval", "-q", "--equexit"})
EXEC_FLAGS_WITH_ARG = frozenset({"-a"})
STDBUF_FLAGS_WITH_ARG = frozenset({"-i", "--input", "-o", "--output", "-e", "--error"})
XARGS_FLAGS_WITH_ARG = frozenset({
    "-a", "--arg-file",
    "-d", "--delimiter",
    "-E",
    "-I", "-J",
    "-L", "-l", "--max-lines",
    "-n", "--max-args",
    "-P", "--max-procs",
    "-R",
    "-s", "-S", "--max-chars",
    "--process-slot-var",
})


@dataclass(frozen=True)
class Inner:
    """Where a wrapper's inner command is: an argument index or an embedded script."""

    start: int | None = None
    script: str | None = None


def _flags_then_command(args: list[str], flags_with_arg: frozenset[str]) -> Inner | None:
    i = skip_flags(args, flags_with_arg)
    return Inner(start=i) if i < len(args) else None


def _sudo(args: list[str]) -> Inner | None:
    return _flags_then_command(args, SUDO_FLAGS_WITH_ARG)


def _doas(args: list[str]) -> Inner | None:
    return _flags_then_command(args, DOAS_FLAGS_WITH_ARG)


def _su(args: list[str]) -> Inner | None:
    for i, word in enumerate(args):
        if word in ("-c", "--command") and i + 1 < len(args):
            return Inner(script=args[i + 1])
        if word.startswith("--command="):
            return Inner(script=word.split("=", 1)[1])
    return None


def _env(args: list[str]) -> Inner | None:
    i = 0
    while i < len(args):
        word = args[i]
        if word in ("-S", "--split-string"):
            if i + 1 < len(args):
                return Inner(script=" ".join(args[i + 1 :]))
            return None
        if word.startswith("--split-string="):
            return Inner(script=" ".join([word.split("=", 1)[1], *args[i + 1 :]]))
        if word.startswith("-S") and not word.startswith("--"):
            return Inner(script=" ".join([word[2:], *args[i + 1 :]]))
        if word == "--":
            i += 1
            break
        if word in ENV_FLAGS_WITH_ARG:
            i += 2
        elif word == "-" or is_flag(word) or is_assignment(word):
            i += 1
        else:
            break
    return Inner(start=i) if i < len(args) else None


def _nice(args: list[str]) -> Inner | None:
    return _flags_then_command(args, NICE_FLAGS_WITH_ARG)


def _ionice(args: list[str]) -> Inner | None:
    return _flags_then_command(args, IONICE_FLAGS_WITH_ARG)


def _nohup(args: list[str]) -> Inner | None:
    return _flags_then_command(args, frozenset())


def _time(args: list[str]) -> Inner | None:
    return _flags_then_command(args, TIME_FLAGS_WITH_ARG)


def _timeout(args: list[str]) -> Inner | None:
    # The first positional is the duration
    i = skip_flags(args, TIMEOUT_FLAGS_WITH_ARG) + 1
    return Inner(start=i) if i < len(args) else None


def _trace(args: list[str]) -> Inner | None:
    return _flags_then_command(args, TRACE_FLAGS_WITH_ARG)


def _watch(args: list[str]) -> Inner | None:
    # watch hands its arguments to sh -c joined by spaces
    i = skip_flags(args, WATCH_FLAGS_WITH_ARG)
    return Inner(script=" ".join(args[i:])) if i < len(args) else None


def _command(args: list[str]) -> Inner | None:
    i = skip_flags(args)
    # command -v / -V only look the name up
    if any(not w.startswith("--") and ("v" in w or "V" in w) for w in args[:i] if is_flag(w)):
        return None
    return Inner(start=i) if i < len(args) else None


def _builtin(args: list[str]) -> Inner | None:
    return Inner(start=0) if args else None


def _exec(args: list[str]) -> Inner | None:
    return _flags_then_command(args, EXEC_FLAGS_WITH_ARG)


def _stdbuf(args: list[str]) -> Inner | None:
    return _flags_then_command(args, STDBUF_FLAGS_WITH_ARG)


def _xargs(args: list[str]) -> Inner | None:
    i = skip_flags(args, XARGS_FLAGS_WITH_ARG)
    replace_mode = any(
        w in ("-I", "--replace") or w.startswith(("-I", "-i", "--replace="))
        for w in args[:i]
    )
    if not replace_mode:
        return None
    return Inner(start=i) if i < len(args) else None


def _shell(args: list[str]) -> Inner | None:
    has_command_flag = False
    i = 0
    while i < len(args):
        word = args[i]
        if word in SHELL_FLAGS_WITH_ARG:
            i += 2
            continue
        if word == "--":
            i += 1
            break
        if word.startswith("--"):
            i += 1
            continue
        if len(word) > 1 and word[0] in "-+":
            if word[0] == "-" and "c" in word[1:]:
                has_command_flag = True
            i += 1
            continue
        break
    if has_command_flag and i < len(args):
        return Inner(script=args[i])
    return None


WRAPPERS: MappingProxyType[str, Callable[[list[str]], Inner | None]] = MappingProxyType({
    "sudo": _sudo,
    "doas": _doas,
    "su": _su,
    "env": _env,
    "nice": _nice,
    "ionice": _ionice,
    "nohup": _nohup,
    "time": _time,
    "timeout": _timeout,
    "strace": _trace,
    "ltrace": _trace,
    "watch": _watch,
    "command": _command,
    "builtin": _builtin,
    "exec": _exec,
    "stdbuf": _stdbuf,
    "xargs": _xargs,
    **{shell: _shell for shell in SHELLS},
})


def unwrap(segment: Segment, depth: int = 0) -> Segment:
    """Strip wrapper commands from a segment, returning the innermost command.

    Returns the segment itself when its command is not a wrapper (or is a
    wrapper with no inner command, like bare ``env``). A ``-c`` script that
    holds several commands yields the shell segment with ``nested`` filled.
    """
    words = segment.words
    if not words:
        return segment

    skipped = 0
    while skipped < len(words) and words[skipped] in SHELL_KEYWORDS:
        skipped += 1
    if skipped:
        if skipped == len(words):
            return segment
        return unwrap(segment.strip_to(segment.word_indices[skipped]), depth)

    name = command_name(words[0])
    handler = WRAPPERS.get(name)
    if handler is None:
        return segment
    inner = handler(list(words[1:]))
    if inner is None:
        return segment

    if depth >= MAX_UNWRAP_DEPTH:
        log.debug("unwrap_depth_exceeded", command=segment.display, depth=depth)
        return segment

    wrappers = segment.wrappers + (name,)
    if inner.script is not None:
        return _reenter(segment, inner.script, wrappers, depth)

    stripped = segment.strip_to(segment.word_indices[1 + inner.start])
    return unwrap(replace(stripped, wrappers=wrappers, depth=segment.depth + 1), depth + 1)


def _reenter(segment: Segment, script: str, wrappers: tuple[str, ...], depth: int) -> Segment:
    inner = split_command(script, depth=segment.depth + 1)
    if not inner:
        return segment
    inner = [replace(s, wrappers=wrappers) for s in inner]
    if len(inner) == 1:
        return unwrap(replace(inner[0], operator=segment.operator), depth + 1)
    nested = tuple(unwrap(s, depth + 1) for s in inner)
    return replace(segment, nested=segment.nested + nested)
