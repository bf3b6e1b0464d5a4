"""
find rule module.

find is an enumerator: on its own it only lists files. It becomes
destructive when combined with -delete or with an -exec/-ok action whose
command (after wrapper stripping) removes files.
"""

from __future__ import annotations

from types import MappingProxyType

from safety_net.core.decision import Decision, RuleMatch
from safety_net.rules import RuleContext, destructive_name, inner_command

# Action flag -> rule id when its command is destructive
EXEC_ACTIONS = MappingProxyType({
    "-exec": "find.exec_rm",
    "-execdir": "find.exec_rm",
    "-ok": "find.ok_rm",
    "-okdir": "find.ok_rm",
})

ACTION_TERMINATORS = frozenset({";", "+"})


def _action_command(args: tuple[str, ...], start: int) -> list[str]:
    """Words of an -exec style action, up to its ';' or '+' terminator."""
    words = []
    for word in args[start:]:
        if word in ACTION_TERMINATORS:
            break
        words.append(word)
    return words


def check(ctx: RuleContext) -> RuleMatch:
    if ctx.command != "find":
        return None
    args = ctx.args
    if "-delete" in args:
        return Decision.block(
            "find.delete",
            "find -delete permanently removes every matched file",
            matched_text=ctx.segment.display,
        )
    for i, word in enumerate(args):
        rule_id = EXEC_ACTIONS.get(word)
        if rule_id is None:
            continue
        inner = inner_command(_action_command(args, i + 1), ctx.segment.depth)
        name = destructive_name(inner)
        if name is not None:
            return Decision.block(
                rule_id,
                f"find {word} {name} deletes every matched file",
                matched_text=inner.display,
            )
    return None
