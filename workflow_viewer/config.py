"""Workflow Viewer backend configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


# Claude data directory (holds projects/<slug>/<session>.jsonl)
CLAUDE_DIR = Path(os.getenv("WORKFLOW_VIEWER_CLAUDE_DIR", str(Path.home() / ".claude"))).expanduser()

# Session listing cache
SESSION_CACHE_TTL_SECONDS = _env_float("WORKFLOW_VIEWER_SESSION_CACHE_TTL_SECONDS", 30.0)
LIVE_WINDOW_SECONDS = _env_float("WORKFLOW_VIEWER_LIVE_WINDOW_SECONDS", 300.0)

# File watcher settling (only quiescent writes trigger a rebuild)
WATCH_DEBOUNCE_MS = _env_int("WORKFLOW_VIEWER_WATCH_DEBOUNCE_MS", 100)
WATCH_STEP_MS = _env_int("WORKFLOW_VIEWER_WATCH_STEP_MS", 50)

# Logging
LOG_LEVEL = os.getenv("WORKFLOW_VIEWER_LOG_LEVEL", "INFO").strip().upper() or "INFO"

# Telemetry
OTEL_ENABLED = _env_bool("WORKFLOW_VIEWER_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("WORKFLOW_VIEWER_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("WORKFLOW_VIEWER_OTEL_SERVICE_NAME", "workflow-viewer")
PROM_PORT = _env_int("WORKFLOW_VIEWER_PROM_PORT", 0)

# Server settings
HOST = os.getenv("WORKFLOW_VIEWER_HOST", "0.0.0.0")
PORT = _env_int("WORKFLOW_VIEWER_PORT", 3456)

# CORS
FRONTEND_ORIGIN = os.getenv("WORKFLOW_VIEWER_FRONTEND_ORIGIN", "http://localhost:5173")
