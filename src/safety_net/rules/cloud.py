"""
Shared lookup for cloud CLI decision tables.

Each CLI module keeps an immutable table keyed by subcommand path, e.g.
("secretsmanager", "get-secret-value"). Anything not in the table is
allowed, so read-only neighbours like ``aws s3 ls`` stay untouched.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from safety_net.core.bash import bash_join, is_flag
from safety_net.core.decision import Decision, RuleMatch


@dataclass(frozen=True)
class CloudRule:
    rule_id: str
    reason: str
    requires_flag: tuple[str, ...] = ()
    """Only match when one of these flags (or flag=value) is present."""

    def flag_present(self, args: tuple[str, ...] | list[str]) -> bool:
        if not self.requires_flag:
            return True
        return any(a.startswith(flag) for a in args if is_flag(a) for flag in self.requires_flag)


def positionals(args: tuple[str, ...] | list[str], flags_with_arg: frozenset[str]) -> list[str]:
    """Non-flag words, skipping the values of flags that take one."""
    result = []
    i = 0
    while i < len(args):
        word = args[i]
        if word in flags_with_arg:
            i += 2
            continue
        if not is_flag(word):
            result.append(word)
        i += 1
    return result


def lookup(
    cli: str,
    args: tuple[str, ...] | list[str],
    table: Mapping[tuple[str, ...], CloudRule],
    flags_with_arg: frozenset[str],
    skip_leading: frozenset[str] = frozenset(),
) -> RuleMatch:
    """Match the longest subcommand path of ``args`` against ``table``."""
    path = positionals(args, flags_with_arg)
    while path and path[0] in skip_leading:
        path = path[1:]
    longest = max((len(key) for key in table), default=0)
    for length in range(min(longest, len(path)), 0, -1):
        rule = table.get(tuple(path[:length]))
        if rule is not None and rule.flag_present(args):
            return Decision.block(
                rule.rule_id,
                rule.reason,
                matched_text=bash_join([cli, *path[:length]]),
            )
    return None
