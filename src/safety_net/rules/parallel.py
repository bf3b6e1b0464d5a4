"""
GNU parallel rule module.

parallel runs a command template once per input, either given before the
``:::`` argument separators or, when no template is given, taken from the
inputs themselves. Either way an rm in the commands is blocked.
"""

from __future__ import annotations

from safety_net.core.bash import skip_flags
from safety_net.core.decision import Decision, RuleMatch
from safety_net.core.segmenter import Segment, split_command
from safety_net.core.wrappers import unwrap
from safety_net.rules import RuleContext, destructive_name, inner_command, is_recursive

FLAGS_WITH_ARG = frozenset({
    "-a", "--arg-file",
    "-d", "--delimiter",
    "-j", "--jobs",
    "-n", "--max-args",
    "-N",
    "-S", "--sshlogin",
    "-I",
    "--colsep",
    "--delay",
    "--joblog",
    "--results",
    "--retries",
    "--tag-string",
    "--timeout",
    "--tmpdir",
    "--workdir", "--wd",
})

SEPARATORS = frozenset({":::", "::::", ":::+", "::::+"})


def _scripts(words: list[str], depth: int) -> list[Segment]:
    """Unwrapped segments of command strings such as 'rm -rf {}'."""
    segments = []
    for word in words:
        segments.extend(unwrap(s, depth + 1) for s in split_command(word, depth=depth + 1))
    return segments


def check(ctx: RuleContext) -> RuleMatch:
    if ctx.command != "parallel":
        return None
    args = list(ctx.args)
    cut = next((i for i, w in enumerate(args) if w in SEPARATORS), len(args))
    template = args[skip_flags(args[:cut], FLAGS_WITH_ARG) : cut]
    depth = ctx.segment.depth

    if len(template) == 1:
        candidates = _scripts(template, depth)
    elif template:
        candidates = [inner_command(template, depth)]
    else:
        # No template: each input is itself a command
        candidates = _scripts([w for w in args[cut:] if w not in SEPARATORS], depth)

    for inner in candidates:
        name = destructive_name(inner)
        if name is None:
            continue
        if name == "rm" and is_recursive(inner.args):
            rule_id, reason = "parallel.rm_rf", "parallel running rm -r recursively deletes every input path"
        else:
            rule_id, reason = "parallel.rm", f"parallel running {name} deletes every input path"
        return Decision.block(rule_id, reason, matched_text=inner.display)
    return None
