"""
Audit trail for vault and sync actions.

JSONL (one JSON object per line), append-only, machine-parseable.
Each entry records who did what to which key, plus a correlation id.
Values are never written here -- only whether a value exists and
how long a newly set value is.
"""

from __future__ import annotations

import json
import logging
import socket
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger("secretsvault.audit")


class AuditEntry(BaseModel):
    """A single structured audit log entry."""

    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    action: str
    key: Optional[str] = None
    actor: str = "unknown"
    has_value: bool = False
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    host: str = Field(default_factory=socket.gethostname)
    metadata: Optional[dict[str, Any]] = None


def audit_event(
    log_path: Path,
    action: str,
    key: Optional[str] = None,
    actor: str = "unknown",
    has_value: bool = False,
    metadata: Optional[dict[str, Any]] = None,
) -> AuditEntry:
    """Append an event to the audit log.

    Args:
        log_path: Audit log file.
        action: create, update, delete, reveal, scan, required.inspect,
            sync, rollback, telemetry.inspect, bootstrap.
        key: Secret key the action touched, if any.
        actor: Who performed the action.
        has_value: Whether the secret holds a value after the action.
        metadata: Extra structured data (diffs, counts). No plaintext.

    Returns:
        AuditEntry: The entry that was written.
    """
    entry = AuditEntry(
        action=action,
        key=key,
        actor=actor,
        has_value=has_value,
        metadata=metadata,
    )
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as f:
        f.write(entry.model_dump_json() + "\n")
    return entry


def read_audit_log(log_path: Path, limit: int = 0) -> list[AuditEntry]:
    """Read and parse the audit log.

    Args:
        log_path: Audit log file.
        limit: Maximum entries to return (0 = all). Keeps the newest.

    Returns:
        list[AuditEntry]: Parsed entries, oldest first.
    """
    if not log_path.exists():
        return []

    entries: list[AuditEntry] = []
    for line in log_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entries.append(AuditEntry.model_validate(json.loads(line)))
        except (json.JSONDecodeError, ValueError):
            logger.debug("Skipping unparseable audit line: %.80s", line)

    if limit > 0:
        entries = entries[-limit:]
    return entries


def describe_value_change(
    value: Optional[str], before_has_value: bool, after_has_value: bool
) -> Optional[dict[str, Any]]:
    """Describe a value change for the audit log without the value itself."""
    if value is None:
        return None
    if value == "":
        return {"operation": "cleared", "from": before_has_value, "to": False}
    return {
        "operation": "set",
        "length": len(value),
        "from": before_has_value,
        "to": after_has_value,
    }
