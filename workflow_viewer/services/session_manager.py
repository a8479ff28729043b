"""Enumerate session logs under the Claude data directory with TTL-cached stats."""
from __future__ import annotations

import logging
import math
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from workflow_viewer import config
from workflow_viewer.date_utils import epoch_to_iso, timestamp_ms
from workflow_viewer.models import SessionInfo
from workflow_viewer.parsers.boilerplate import is_boilerplate
from workflow_viewer.parsers.records import parse_json_line

logger = logging.getLogger("workflow_viewer.sessions")

_TAG_PATTERN = re.compile(r"<[^>]+>")
_WHITESPACE_PATTERN = re.compile(r"\s+")
_DRIVE_PREFIX_PATTERN = re.compile(r"^([A-Za-z])--")


def decode_project_path(folder_name: str) -> str:
    """Approximate the original project path from its directory slug.

    ``--`` becomes a path separator and any remaining ``-`` a space. Names that
    contained literal dashes do not round-trip.
    """
    decoded = _DRIVE_PREFIX_PATTERN.sub(r"\1:/", folder_name)
    return decoded.replace("--", "/").replace("-", " ")


def _clean_first_message(text: str) -> str:
    cleaned = _TAG_PATTERN.sub("", text)
    cleaned = _WHITESPACE_PATTERN.sub(" ", cleaned).strip()
    return cleaned[:150]


def scan_session_stats(content: str) -> dict[str, object]:
    """Summary stats for one log: user record count, tool uses, first real prompt, duration."""
    message_count = 0
    tool_count = 0
    first_message = ""
    first_ms: Optional[float] = None
    last_ms: Optional[float] = None

    for line in content.split("\n"):
        entry = parse_json_line(line)
        if entry is None:
            continue

        ts = timestamp_ms(entry.get("timestamp"))
        if not math.isnan(ts):
            if first_ms is None:
                first_ms = ts
            last_ms = ts

        entry_type = entry.get("type")
        message = entry.get("message")
        if entry_type == "user":
            message_count += 1
            if not first_message and isinstance(message, dict):
                text = message.get("content")
                if isinstance(text, str) and not is_boilerplate(text):
                    first_message = _clean_first_message(text)
        elif entry_type == "assistant" and isinstance(message, dict):
            blocks = message.get("content")
            if isinstance(blocks, list):
                tool_count += sum(
                    1 for block in blocks if isinstance(block, dict) and block.get("type") == "tool_use"
                )

    duration = int(last_ms - first_ms) if first_ms is not None and last_ms is not None else 0
    return {
        "messageCount": message_count,
        "toolCount": tool_count,
        "firstMessage": first_message,
        "duration": duration,
    }


@dataclass
class _CacheEntry:
    info: SessionInfo
    cached_at: float


class SessionManager:
    """Lists session logs. Per-file stats are cached for a fixed TTL and
    dropped early whenever the file's modification time changes."""

    def __init__(
        self,
        claude_dir: Path,
        ttl_seconds: float = config.SESSION_CACHE_TTL_SECONDS,
        live_window_seconds: float = config.LIVE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.claude_dir = Path(claude_dir)
        self.ttl_seconds = ttl_seconds
        self.live_window_seconds = live_window_seconds
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def projects_dir(self) -> Path:
        return self.claude_dir / "projects"

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()

    def _session_files(self) -> list[Path]:
        files: list[Path] = []
        try:
            project_dirs = sorted(self.projects_dir.iterdir())
        except OSError:
            return files
        for project_dir in project_dirs:
            if not project_dir.is_dir():
                continue
            try:
                files.extend(
                    path for path in sorted(project_dir.glob("*.jsonl"))
                    if not path.name.startswith("agent-")
                )
            except OSError as exc:
                logger.warning("Failed to scan project folder %s: %s", project_dir, exc)
        return files

    def _describe(self, path: Path, now: float) -> SessionInfo:
        stat = path.stat()
        last_modified = epoch_to_iso(stat.st_mtime)
        is_live = (now - stat.st_mtime) < self.live_window_seconds
        key = str(path)

        with self._lock:
            cached = self._cache.get(key)
        if cached and now - cached.cached_at < self.ttl_seconds and cached.info.lastModified == last_modified:
            return cached.info.model_copy(update={"isLive": is_live})

        stats = scan_session_stats(path.read_text(encoding="utf-8", errors="replace"))
        info = SessionInfo(
            sessionId=path.stem,
            filePath=key,
            projectPath=decode_project_path(path.parent.name),
            lastModified=last_modified,
            fileSize=stat.st_size,
            isLive=is_live,
            **stats,
        )
        with self._lock:
            self._cache[key] = _CacheEntry(info=info, cached_at=now)
        return info

    def list_sessions(self) -> list[SessionInfo]:
        """All session logs, newest first. Unreadable logs are left out."""
        now = self._clock()
        sessions: list[SessionInfo] = []
        for path in self._session_files():
            try:
                sessions.append(self._describe(path, now))
            except OSError as exc:
                logger.warning("Skipping unreadable session log %s: %s", path, exc)
        sessions.sort(key=lambda info: info.lastModified, reverse=True)
        return sessions

    def get_session(self, session_id: str) -> Optional[SessionInfo]:
        return next((info for info in self.list_sessions() if info.sessionId == session_id), None)


# Global instance rooted at the configured Claude directory
session_manager = SessionManager(config.CLAUDE_DIR)
