"""
Rule evaluation pipeline.

A command is tokenized, split into segments and unwrapped; each segment
then runs through fixed stages, and the first stage to produce a decision
wins for that segment:

1. explicit deny rules, then custom rules (first match)
2. paranoid mode
3. reading a sensitive file
4. git add of a sensitive file
5. the built-in rule modules

Segment decisions are combined most-restrictive-first, stopping at the
first block. File tools (Read, Edit, Write) take the shorter path in
evaluate_path.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

import structlog

from safety_net.core.bash import is_flag
from safety_net.core.config import Config, Pattern
from safety_net.core.decision import ALLOW, ENV_TIP, Decision, RuleMatch, combine
from safety_net.core.request import Request, ToolKind
from safety_net.core.segmenter import Segment, is_input_redirect, split_command
from safety_net.core.wrappers import MAX_UNWRAP_DEPTH, unwrap
from safety_net.rules import RuleContext, get_rule_modules
from safety_net.rules import manifests
from safety_net.rules.git import split_subcommand

log = structlog.get_logger(__name__)


def _env_details(pattern: Pattern) -> str | None:
    return ENV_TIP if r"\.env" in pattern.source else None


# === Explicit rules ===


def match_deny_rules(content: str, config: Config, tool: ToolKind) -> RuleMatch:
    """Block if ``content`` matches a deny rule scoped to ``tool``."""
    for rule in config.deny_rules:
        if rule.applies_to(tool) and rule.pattern.search(content):
            return Decision.block(f"deny.{rule.name}", rule.reason, matched_text=content)
    return None


def match_custom_rules(content: str, config: Config, tool: ToolKind) -> RuleMatch:
    """Decision of the first custom rule matching ``content``, if any."""
    for rule in config.custom_rules:
        if not (rule.applies_to(tool) and rule.pattern.search(content)):
            continue
        rule_id = f"custom.{rule.name}"
        reason = rule.reason or f"matched custom rule '{rule.name}'"
        if rule.action == "allow":
            return Decision.allow(reason, rule_id)
        if rule.action == "ask":
            return Decision.ask(rule_id, reason, matched_text=content)
        return Decision.block(rule_id, reason, matched_text=content)
    return None


# === Segment stages ===


def _explicit_rules(ctx: RuleContext) -> RuleMatch:
    text = ctx.segment.text
    return match_deny_rules(text, ctx.config, ctx.tool) or match_custom_rules(text, ctx.config, ctx.tool)


def _paranoid(ctx: RuleContext) -> RuleMatch:
    policy = ctx.config.paranoid
    if not policy.enabled:
        return None
    segments = [ctx.segment]
    if ctx.outer is not None and ctx.outer is not ctx.segment:
        segments.append(ctx.outer)
    candidates = [c for seg in segments for c in (seg.text, *(t.value for t in seg.tokens))]
    for candidate in candidates:
        pattern = ctx.config.match_sensitive(candidate)
        if pattern is None:
            pattern = next((p for p in policy.extra_patterns if p.search(candidate)), None)
        if pattern is not None:
            return Decision.block(
                "paranoid.sensitive_mention",
                f"paranoid mode: command mentions '{pattern.source}'",
                matched_text=candidate,
            )
    return None


def _read_targets(segment: Segment) -> Iterator[str]:
    for arg in segment.args:
        if not is_flag(arg):
            yield arg
        elif arg.startswith("--") and "=" in arg:
            yield arg.split("=", 1)[1]
    for op, target in segment.redirects:
        if target is not None and is_input_redirect(op):
            yield target


def _read_sensitive(ctx: RuleContext) -> RuleMatch:
    if ctx.command is None or not ctx.config.read_command_pattern.search(ctx.command):
        return None
    for target in _read_targets(ctx.segment):
        pattern = ctx.config.match_sensitive(target)
        if pattern is not None:
            return Decision.block(
                "secrets.sensitive_file",
                f"access to sensitive file matching '{pattern.source}'",
                matched_text=target,
                details=_env_details(pattern),
            )
    return None


def _git_add_sensitive(ctx: RuleContext) -> RuleMatch:
    if ctx.command != "git" or not ctx.config.git.block_add_sensitive:
        return None
    subcommand, rest = split_subcommand(ctx.args)
    if subcommand != "add":
        return None
    for path in rest:
        if is_flag(path):
            continue
        pattern = ctx.config.match_sensitive(path)
        if pattern is not None:
            return Decision.block(
                "git.add.sensitive",
                f"git add on sensitive file matching '{pattern.source}'",
                matched_text=path,
                details=_env_details(pattern),
            )
    return None


def _builtin_modules(ctx: RuleContext) -> RuleMatch:
    for module in get_rule_modules():
        match = module.check(ctx)
        if match is not None:
            return match
    return None


STAGES: tuple[Callable[[RuleContext], RuleMatch], ...] = (
    _explicit_rules,
    _paranoid,
    _read_sensitive,
    _git_add_sensitive,
    _builtin_modules,
)


def evaluate(
    segment: Segment,
    config: Config,
    tool: ToolKind = ToolKind.BASH,
    cwd: str = "/",
    current_branch: str | None = None,
    outer: Segment | None = None,
) -> Decision:
    """Run one (already unwrapped) segment through the stages.

    ``outer`` is the segment before unwrapping; paranoid mode scans it too.
    """
    ctx = RuleContext(segment, config, tool=tool, cwd=cwd, current_branch=current_branch, outer=outer)
    for stage in STAGES:
        match = stage(ctx)
        if match is not None:
            return match
    return ALLOW


# === Whole commands ===


def _walk(segment: Segment) -> Iterator[Segment]:
    """A segment and, depth-first, the segments nested inside it."""
    yield segment
    for child in segment.nested:
        yield from _walk(child)


def evaluate_command(
    command: str,
    config: Config,
    tool: ToolKind = ToolKind.BASH,
    cwd: str = "/",
    current_branch: str | None = None,
    depth: int = 0,
) -> Decision:
    """Evaluate a full shell command string. Empty commands are allowed."""
    if not command.strip():
        return ALLOW

    if depth == 0:
        denied = match_deny_rules(command, config, tool)
        if denied is not None:
            return denied

    def decisions() -> Iterator[Decision]:
        for raw in split_command(command, depth=depth):
            bodies = list(raw.substitutions)
            for seg in _walk(unwrap(raw, depth)):
                yield evaluate(seg, config, tool, cwd, current_branch, outer=raw)
                bodies.extend(b for b in seg.substitutions if b not in bodies)
            if bodies and depth + 1 > MAX_UNWRAP_DEPTH:
                log.debug("substitution_depth_exceeded", command=raw.display, depth=depth)
                continue
            for body in bodies:
                yield evaluate_command(body, config, tool, cwd, current_branch, depth=depth + 1)

    return combine(decisions())


def evaluate_path(request: Request, config: Config) -> Decision:
    """Evaluate a Read, Edit or Write request by its file path."""
    path = request.file_path
    if path is None:
        return ALLOW

    match = match_deny_rules(path, config, request.tool) or match_custom_rules(path, config, request.tool)
    if match is not None:
        return match

    pattern = config.match_sensitive(path)
    if pattern is not None:
        if config.paranoid.enabled:
            return Decision.block(
                "paranoid.sensitive_file",
                f"paranoid mode: access to sensitive file matching '{pattern.source}'",
                matched_text=path,
                details=_env_details(pattern),
            )
        return Decision.block(
            "secrets.sensitive_file",
            f"access to sensitive file matching '{pattern.source}'",
            matched_text=path,
            details=_env_details(pattern),
        )
    if config.paranoid.enabled:
        extra = next((p for p in config.paranoid.extra_patterns if p.search(path)), None)
        if extra is not None:
            return Decision.block(
                "paranoid.sensitive_file",
                f"paranoid mode: path matches '{extra.source}'",
                matched_text=path,
            )

    return manifests.check_path(path, request.tool, config) or ALLOW


def evaluate_request(request: Request, config: Config, current_branch: str | None = None) -> Decision:
    """Evaluate a parsed hook request against ``config``."""
    if request.tool.is_file_tool:
        return evaluate_path(request, config)
    return evaluate_command(
        request.raw_command or "",
        config,
        tool=request.tool,
        cwd=request.cwd,
        current_branch=current_branch,
    )
