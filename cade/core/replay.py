"""
Reading audit logs back.

The audit log is the durable record of what each conversation did.
These helpers parse it, summarize it, and rebuild the conversation
history a SessionManager held at the end of the log.
"""

import json
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Union

from .exceptions import AuditLogError
from .models import AUDIT_FORMAT_VERSION, AuditRecord, ConversationTurn, Role, ToolInvocation


def read_audit_log(path: Union[str, Path], strict: bool = True) -> Iterator[AuditRecord]:
    """Yield records in write order.

    Args:
        path: JSONL audit log
        strict: Raise AuditLogError on a malformed line instead of skipping it.
            A truncated final line (crash mid-write) is always skipped.
    """
    log_path = Path(path)
    try:
        lines = log_path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise AuditLogError(path=str(log_path), reason=str(e))

    for number, line in enumerate(lines, 1):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
            record = AuditRecord.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            if strict and number != len(lines):
                raise AuditLogError(path=str(log_path), reason=str(e), line_number=number)
            continue

        version_error = _check_version(record.metadata)
        if version_error is not None:
            raise AuditLogError(path=str(log_path), reason=version_error, line_number=number)

        reason = _check_history(record)
        if reason is not None:
            if strict:
                raise AuditLogError(path=str(log_path), reason=reason, line_number=number)
            continue
        yield record


_ROLES = {role.value for role in Role}


def _check_version(metadata) -> Optional[str]:
    if not isinstance(metadata, dict):
        return "metadata is not an object"
    version = metadata.get("format_version", AUDIT_FORMAT_VERSION)
    if isinstance(version, bool) or not isinstance(version, int):
        return f"invalid format_version {version!r}"
    if version > AUDIT_FORMAT_VERSION:
        return f"format version {version} is newer than supported {AUDIT_FORMAT_VERSION}"
    return None


def _check_history(record: AuditRecord) -> Optional[str]:
    """Return why a history_append record cannot be replayed, or None."""
    if record.event_type != "history_append":
        return None
    data = record.data
    if not isinstance(data, dict):
        return "history_append record has no data"
    if data.get("role") not in _ROLES:
        return f"history_append record has invalid role {data.get('role')!r}"
    calls = data.get("tool_calls") or []
    if not isinstance(calls, list) or not all(
        isinstance(call, dict) and "name" in call for call in calls
    ):
        return "history_append record has malformed tool_calls"
    return None


@dataclass
class AuditSummary:
    """Aggregate view of an audit log."""
    records: int = 0
    raw_messages: int = 0
    turns: int = 0
    errors: int = 0
    total_cost_usd: float = 0.0
    session_ids: list[str] = field(default_factory=list)
    event_counts: dict[str, int] = field(default_factory=dict)
    tool_counts: dict[str, int] = field(default_factory=dict)
    first_timestamp: Optional[str] = None
    last_timestamp: Optional[str] = None


def summarize(records: list[AuditRecord]) -> AuditSummary:
    summary = AuditSummary()
    events: Counter = Counter()
    tools: Counter = Counter()

    for record in records:
        summary.records += 1
        events[record.event_type] += 1
        if summary.first_timestamp is None:
            summary.first_timestamp = record.timestamp
        summary.last_timestamp = record.timestamp

        if record.session_id and record.session_id not in summary.session_ids:
            summary.session_ids.append(record.session_id)

        if record.event_type == "tool_use" and isinstance(record.data, dict):
            tools[record.data.get("name", "unknown")] += 1
        elif record.event_type == "turn_result" and isinstance(record.data, dict):
            summary.turns += 1
            summary.total_cost_usd += float(record.data.get("cost_usd") or 0.0)
            if record.data.get("error"):
                summary.errors += 1

    summary.raw_messages = events.get("raw_message", 0)
    summary.event_counts = dict(events)
    summary.tool_counts = dict(tools)
    return summary


def rebuild_history(records: list[AuditRecord]) -> list[ConversationTurn]:
    """Reconstruct conversation history from history_append records.

    A history_cleared record resets the reconstruction, matching what
    SessionManager.clear_history() did at the time.
    """
    history: list[ConversationTurn] = []
    for record in records:
        if record.event_type == "history_cleared":
            history = []
        elif record.event_type == "history_append" and isinstance(record.data, dict):
            data = record.data
            calls = tuple(
                ToolInvocation(**{k: v for k, v in call.items() if k in _TOOL_FIELDS})
                for call in data.get("tool_calls") or []
            )
            history.append(ConversationTurn(
                role=Role(data["role"]),
                text=data.get("text", ""),
                tool_calls=calls,
            ))
    return history


_TOOL_FIELDS = {
    "name", "input", "output", "tool_use_id", "is_error", "requested_at", "completed_at",
}
