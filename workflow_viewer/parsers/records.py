"""Classify raw JSONL log lines into typed log records."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

RecordKind = Literal["user", "assistant", "file-snapshot"]

# Top-level `type` discriminator values as written by the producer.
_KIND_BY_ENTRY_TYPE: dict[str, RecordKind] = {
    "user": "user",
    "assistant": "assistant",
    "file-history-snapshot": "file-snapshot",
}


@dataclass(frozen=True)
class LogRecord:
    """One successfully classified log line. Never mutated after parsing."""

    kind: RecordKind
    uuid: str = ""
    parent_uuid: Optional[str] = None
    timestamp: str = ""
    message: dict[str, Any] = field(default_factory=dict)
    message_id: str = ""
    tool_use_result: Any = None
    raw: dict[str, Any] = field(default_factory=dict)


def parse_json_line(line: str) -> dict[str, Any] | None:
    """Parse one line as a JSON object, or return None.

    Lines that do not both start with ``{`` and end with ``}`` are rejected
    before parsing; they are usually a write still being flushed.
    """
    trimmed = (line or "").strip()
    if not trimmed or not trimmed.startswith("{") or not trimmed.endswith("}"):
        return None
    try:
        parsed = json.loads(trimmed)
    except (json.JSONDecodeError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


def is_valid_json_line(line: str) -> bool:
    return parse_json_line(line) is not None


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def record_from_entry(entry: dict[str, Any]) -> LogRecord | None:
    kind = _KIND_BY_ENTRY_TYPE.get(str(entry.get("type") or ""))
    if kind is None:
        return None

    timestamp = entry.get("timestamp")
    timestamp = timestamp if isinstance(timestamp, str) else ""

    if kind == "file-snapshot":
        message_id = entry.get("messageId")
        snapshot = entry.get("snapshot")
        if not isinstance(message_id, str) and isinstance(snapshot, dict):
            message_id = snapshot.get("messageId")
        if not timestamp and isinstance(snapshot, dict) and isinstance(snapshot.get("timestamp"), str):
            timestamp = snapshot["timestamp"]
        return LogRecord(
            kind=kind,
            timestamp=timestamp,
            message_id=message_id if isinstance(message_id, str) else "",
            raw=entry,
        )

    uuid = entry.get("uuid")
    message = entry.get("message")
    if not isinstance(uuid, str) or not uuid or not isinstance(message, dict):
        return None

    return LogRecord(
        kind=kind,
        uuid=uuid,
        parent_uuid=_optional_str(entry.get("parentUuid")),
        timestamp=timestamp,
        message=message,
        message_id=str(message.get("id") or ""),
        tool_use_result=entry.get("toolUseResult"),
        raw=entry,
    )


def classify_line(line: str) -> LogRecord | None:
    """Classify one trimmed, non-empty log line.

    Malformed lines and unrecognized shapes yield None without raising.
    """
    entry = parse_json_line(line)
    if entry is None:
        return None
    return record_from_entry(entry)
