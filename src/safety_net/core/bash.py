"""Bash word helpers shared by the tokenizer, unwrapper and rule modules."""

from __future__ import annotations

import posixpath
import re

ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*\+?=")


def bash_quote(s: str) -> str:
    """Quote a string for safe use in bash.

    Uses single quotes (safest), with escape handling for embedded single quotes.
    Returns '' for empty strings. Returns unquoted if no special chars.
    """
    if not s:
        return "''"
    if all(c.isalnum() or c in "-_./=@:+,%" for c in s):
        return s
    # Single-quote, escaping embedded single quotes as '"'"'
    return "'" + s.replace("'", "'\"'\"'") + "'"


def bash_join(words: list[str] | tuple[str, ...]) -> str:
    """Join words into a bash command string with proper quoting."""
    return " ".join(bash_quote(w) for w in words)


def command_name(word: str) -> str:
    """Return the bare command name for a word, e.g. /usr/bin/sudo -> sudo."""
    return posixpath.basename(word.rstrip("/")) or word


def is_assignment(word: str) -> bool:
    """Check whether a word looks like NAME=value (or NAME+=value)."""
    return ASSIGNMENT_RE.match(word) is not None


def is_flag(word: str) -> bool:
    """Check whether a word is an option (starts with '-' and is not '-' itself)."""
    return len(word) > 1 and word.startswith("-")


def skip_flags(
    args: list[str] | tuple[str, ...],
    flags_with_arg: frozenset[str] = frozenset(),
    *,
    stop_at_double_dash: bool = True,
    skip_assignments: bool = False,
) -> int:
    """Skip flags and their arguments, return index of first non-flag word.

    Handles ``--flag=value``, attached short values (``-uroot`` when ``-u``
    takes an argument) and the ``--`` end-of-options marker.
    """
    i = 0
    while i < len(args):
        word = args[i]

        if word == "--":
            return i + 1 if stop_at_double_dash else i

        if skip_assignments and is_assignment(word):
            i += 1
            continue

        if not is_flag(word):
            return i

        if word in flags_with_arg:
            i += 2
            continue

        # --flag=value, or -Xvalue where -X takes an argument
        if word.startswith("--") and "=" in word:
            i += 1
            continue
        if not word.startswith("--") and len(word) > 2 and word[:2] in flags_with_arg:
            i += 1
            continue

        i += 1

    return i
