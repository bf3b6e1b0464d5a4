"""
Decision model.

Every request ends in exactly one Decision: allow, block or ask. Rule
modules return a RuleMatch, which is a Decision or None for "no match".
Decisions combine most-restrictive-wins (block > ask > allow).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Literal, Optional

Action = Literal["allow", "block", "ask"]

SEVERITY: dict[str, int] = {"allow": 0, "ask": 1, "block": 2}

# Shown with .env blocks so the agent knows the template files are fine
ENV_TIP = "Tip: .env.example, .env.sample, .env.template, and .env.dist are allowed by default"


@dataclass(frozen=True)
class Decision:
    """Result of evaluating a request, a segment or a single rule."""

    action: Action
    reason: str = ""
    rule_id: str | None = None
    matched_text: str | None = None
    details: str | None = None
    suggestion: str | None = None

    def __post_init__(self) -> None:
        if self.action not in SEVERITY:
            raise ValueError(f"unknown action: {self.action!r}")
        if self.action != "allow" and not (self.reason and self.rule_id):
            raise ValueError(f"{self.action} decision needs a reason and a rule id")

    @classmethod
    def allow(cls, reason: str = "", rule_id: str | None = None) -> Decision:
        return cls("allow", reason, rule_id)

    @classmethod
    def block(
        cls,
        rule_id: str,
        reason: str,
        *,
        matched_text: str | None = None,
        details: str | None = None,
    ) -> Decision:
        return cls("block", reason, rule_id, matched_text=matched_text, details=details)

    @classmethod
    def ask(
        cls,
        rule_id: str,
        reason: str,
        *,
        matched_text: str | None = None,
        suggestion: str | None = None,
    ) -> Decision:
        return cls("ask", reason, rule_id, matched_text=matched_text, suggestion=suggestion)

    @property
    def severity(self) -> int:
        return SEVERITY[self.action]

    @property
    def is_allowed(self) -> bool:
        return self.action == "allow"

    @property
    def is_blocked(self) -> bool:
        return self.action == "block"

    @property
    def is_ask(self) -> bool:
        return self.action == "ask"

    def with_matched_text(self, text: str) -> Decision:
        """Fill in matched_text if the rule did not set it."""
        if self.matched_text is not None:
            return self
        return replace(self, matched_text=text)

    def __repr__(self) -> str:
        if self.is_allowed:
            return "Decision('allow')"
        return f"Decision({self.action!r}, {self.rule_id!r}, {self.reason!r})"


RuleMatch = Optional[Decision]

ALLOW = Decision.allow()


def combine(decisions: Iterable[Decision]) -> Decision:
    """Return the most restrictive decision, stopping at the first block.

    Among equally restrictive decisions the first one wins, so the reported
    rule is the earliest segment that triggered it.
    """
    result: Decision | None = None
    for decision in decisions:
        if result is None or decision.severity > result.severity:
            result = decision
        if result.is_blocked:
            break
    return result if result is not None else ALLOW
