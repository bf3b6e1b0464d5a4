"""
Audit records: one JSON line per decision.

Records are redacted and truncated before they are written, and each is
appended with a single write() on a file opened in append mode, so
concurrent hook processes never interleave partial lines.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

from safety_net.core.decision import Decision
from safety_net.core.redaction import redact_secrets
from safety_net.core.request import Request

SUMMARY_LIMIT = 200


@dataclass(frozen=True)
class AuditRecord:
    timestamp: str
    tool: str
    command_or_path: str
    decision: str
    rule_id: str | None = None
    reason: str | None = None
    session_id: str | None = None

    def to_json(self) -> str:
        return json.dumps({k: v for k, v in asdict(self).items() if v is not None})


def truncate(text: str, limit: int = SUMMARY_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def build_audit_record(request: Request, decision: Decision, now: datetime | None = None) -> AuditRecord:
    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    return AuditRecord(
        timestamp=timestamp,
        tool=request.tool.value,
        command_or_path=truncate(redact_secrets(request.summary)),
        decision=decision.action,
        rule_id=decision.rule_id,
        reason=redact_secrets(decision.reason) if decision.reason else None,
        session_id=request.session_id,
    )


def write_audit_record(record: AuditRecord, path: Path) -> None:
    """Append ``record`` to the JSON-lines file at ``path``. OSError propagates."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a") as f:
        f.write(record.to_json() + "\n")
