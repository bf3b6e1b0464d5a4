"""
xargs rule module.

xargs feeds enumerated names (usually from find or ls) into a command. When
that command removes files the pair is as destructive as ``find -delete``.
Catches both ``xargs rm`` and the replacement form ``xargs -I{} rm {}``,
which the unwrapper has already reduced to ``rm {}``.
"""

from __future__ import annotations

from safety_net.core.bash import skip_flags
from safety_net.core.decision import Decision, RuleMatch
from safety_net.core.wrappers import XARGS_FLAGS_WITH_ARG
from safety_net.rules import RuleContext, destructive_name, inner_command, is_recursive


def check(ctx: RuleContext) -> RuleMatch:
    if ctx.command == "xargs":
        args = ctx.args
        inner = inner_command(args[skip_flags(args, XARGS_FLAGS_WITH_ARG) :], ctx.segment.depth)
    elif "xargs" in ctx.segment.wrappers:
        inner = ctx.segment
    else:
        return None

    name = destructive_name(inner)
    if name is None:
        return None
    if name == "rm" and is_recursive(inner.args):
        rule_id, reason = "xargs.rm_rf", "xargs piping into rm -r recursively deletes every listed path"
    else:
        rule_id, reason = "xargs.rm", f"xargs piping into {name} deletes every listed path"
    return Decision.block(rule_id, reason, matched_text=inner.display)
