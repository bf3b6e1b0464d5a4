"""
Hook output: exit codes, block messages and the ask response.

Allow prints nothing. Block writes a message to stderr and exits 2, which
Claude Code feeds back to the agent. Ask prints the PreToolUse hook JSON on
stdout and exits 0 so the user is prompted.
"""

from __future__ import annotations

import json
from typing import NamedTuple

from safety_net.core.decision import Decision
from safety_net.core.redaction import redact_secrets

EXIT_ALLOW = 0
EXIT_BLOCK = 2
EXIT_ASK = 0

BLOCK_NOTICE = (
    "Do not try to reach the blocked file, secret or token another way. "
    "If you are certain it must be inspected, stop and ask the user."
)


class Rendered(NamedTuple):
    exit_code: int
    stdout: str
    stderr: str


def format_block_message(decision: Decision) -> str:
    message = f"BLOCKED: {decision.reason} (rule: {decision.rule_id})"
    if decision.details:
        message += f" ({decision.details})"
    return redact_secrets(f"{message}\n\n{BLOCK_NOTICE}")


def format_ask_response(decision: Decision) -> str:
    reason = f"{decision.reason} (rule: {decision.rule_id})"
    if decision.suggestion:
        reason += f"\n\nSuggestion: {decision.suggestion}"
    return json.dumps({
        "hookSpecificOutput": {
            "hookEventName": "PreToolUse",
            "permissionDecision": "ask",
            "permissionDecisionReason": redact_secrets(reason),
        }
    })


def render_decision(decision: Decision) -> Rendered:
    if decision.is_blocked:
        return Rendered(EXIT_BLOCK, "", format_block_message(decision) + "\n")
    if decision.is_ask:
        return Rendered(EXIT_ASK, format_ask_response(decision) + "\n", "")
    return Rendered(EXIT_ALLOW, "", "")
