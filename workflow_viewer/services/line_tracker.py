"""Append-only read position and fingerprint dedup for a growing JSONL log."""
from __future__ import annotations

import logging
from typing import Any

from workflow_viewer.observability import record_lines
from workflow_viewer.parsers.records import LogRecord, parse_json_line, record_from_entry

logger = logging.getLogger("workflow_viewer.tracker")


def rolling_hash(text: str) -> int:
    """32-bit signed multiplicative string hash (h * 31 + c)."""
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def fingerprint_line(line: str, entry: dict[str, Any] | None = None) -> str:
    """Identity used to skip lines that were already processed.

    Record uuid when present, ``snapshot-<messageId>`` for file snapshots,
    otherwise a hash of the raw line. Hash collisions are not detected.
    """
    if entry is None:
        entry = parse_json_line(line)
    if entry is not None:
        uuid = entry.get("uuid")
        if uuid:
            return str(uuid)
        message_id = entry.get("messageId")
        if message_id:
            return f"snapshot-{message_id}"
    return f"hash-{rolling_hash(line)}"


class LineTracker:
    """Tracks which lines of a log have been consumed.

    The line cursor only lets a re-read skip the already-seen prefix; the
    fingerprint set is what guarantees each record is processed once.
    """

    def __init__(self) -> None:
        self._line_count = 0
        self._last_line = ""
        self._fingerprints: set[str] = set()

    @property
    def line_count(self) -> int:
        return self._line_count

    @property
    def fingerprint_count(self) -> int:
        return len(self._fingerprints)

    def has_seen(self, fingerprint: str) -> bool:
        return fingerprint in self._fingerprints

    def reset(self) -> None:
        self._line_count = 0
        self._last_line = ""
        self._fingerprints.clear()

    def _prefix_intact(self, lines: list[str]) -> bool:
        if self._line_count == 0:
            return True
        return len(lines) >= self._line_count and lines[self._line_count - 1] == self._last_line

    def feed(self, content: str) -> list[LogRecord]:
        """Consume the full current file content and return newly seen records."""
        lines = [line.strip() for line in content.split("\n") if line.strip()]

        # A truncated or rewritten file is rescanned from the top.
        start = self._line_count if self._prefix_intact(lines) else 0
        if start == len(lines):
            return []

        records: list[LogRecord] = []
        accepted = 0
        skipped = 0
        trailing_invalid = False
        for line in lines[start:]:
            entry = parse_json_line(line)
            if entry is None:
                skipped += 1
                trailing_invalid = True
                continue
            trailing_invalid = False
            fingerprint = fingerprint_line(line, entry)
            if fingerprint in self._fingerprints:
                continue
            self._fingerprints.add(fingerprint)
            accepted += 1
            record = record_from_entry(entry)
            if record is not None:
                records.append(record)

        # A partial trailing write is revisited on the next read.
        self._line_count = len(lines) - 1 if trailing_invalid else len(lines)
        self._last_line = lines[self._line_count - 1] if self._line_count else ""
        if skipped:
            logger.debug("Skipped %d incomplete or malformed lines", skipped)
        record_lines(accepted=accepted, skipped=skipped)
        return records
