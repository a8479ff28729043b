"""API router for session listing and live watch control."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from workflow_viewer.models import SessionInfo, WatchRequest, WatchResponse
from workflow_viewer.services.live_updates import watch_service
from workflow_viewer.services.session_manager import session_manager
from workflow_viewer.services.session_watcher import WatchError

logger = logging.getLogger("workflow_viewer.sessions")

sessions_router = APIRouter(prefix="/api", tags=["sessions"])


@sessions_router.get("/sessions", response_model=list[SessionInfo])
def list_sessions():
    """List available session logs, newest first."""
    return session_manager.list_sessions()


@sessions_router.get("/sessions/{session_id}", response_model=SessionInfo)
def get_session(session_id: str):
    """Get listing metadata for one session."""
    session = session_manager.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@sessions_router.post("/watch", response_model=WatchResponse)
async def watch_session(request: WatchRequest):
    """Start watching a session log. Replaces any active watch."""
    session_file = request.sessionFile.strip()
    if not session_file:
        raise HTTPException(status_code=400, detail="sessionFile is required")
    try:
        await watch_service.watch(session_file)
    except WatchError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    logger.info(f"Watching session file: {session_file}")
    return WatchResponse(success=True, sessionFile=session_file)


@sessions_router.post("/stop", response_model=WatchResponse)
async def stop_watching():
    """Stop the active watch, if any."""
    await watch_service.stop()
    return WatchResponse(success=True)
