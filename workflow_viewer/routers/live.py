"""WebSocket endpoint pushing conversation trees to the UI."""
from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from workflow_viewer.services.live_updates import connection_manager, watch_service

live_router = APIRouter(tags=["live"])


@live_router.websocket("/")
@live_router.websocket("/ws")
async def live_updates(websocket: WebSocket):
    """Send the current tree on connect, then keep the socket open for broadcasts.

    Messages sent by the client are ignored.
    """
    await connection_manager.connect(websocket)
    snapshot = watch_service.current_snapshot()
    if snapshot is not None:
        await connection_manager.send_to(websocket, snapshot)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await connection_manager.disconnect(websocket)
