"""WebSocket fan-out and the single active session watch."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Set

from fastapi import WebSocket

from workflow_viewer.models import ConversationNode, WsMessage
from workflow_viewer.observability import record_broadcast
from workflow_viewer.services.session_watcher import SessionWatcher, TreeCallback

logger = logging.getLogger("workflow_viewer.live")


class ConnectionManager:
    """Manages WebSocket connections for real-time tree updates."""

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self.active_connections.add(websocket)
        logger.info("Client connected (%d total)", len(self.active_connections))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self.active_connections.discard(websocket)
        logger.info("Client disconnected (%d total)", len(self.active_connections))

    async def broadcast(self, message: WsMessage) -> None:
        """Send a message to every connected client, dropping dead connections."""
        if not self.active_connections:
            return

        payload = message.model_dump(mode="json")
        async with self._lock:
            dead_connections = set()
            for connection in self.active_connections:
                try:
                    await connection.send_json(payload)
                except Exception:
                    dead_connections.add(connection)
            self.active_connections -= dead_connections
            delivered = len(self.active_connections)
        record_broadcast(message.type, delivered)

    async def send_to(self, websocket: WebSocket, message: WsMessage) -> None:
        try:
            await websocket.send_json(message.model_dump(mode="json"))
        except Exception:
            await self.disconnect(websocket)


WatcherFactory = Callable[[str, TreeCallback], SessionWatcher]


class WatchService:
    """Owns the one active SessionWatcher. Starting a watch stops the previous one first."""

    def __init__(self, connections: ConnectionManager, watcher_factory: WatcherFactory = SessionWatcher):
        self._connections = connections
        self._watcher_factory = watcher_factory
        self._watcher: Optional[SessionWatcher] = None
        self._lock = asyncio.Lock()

    @property
    def current_file(self) -> Optional[str]:
        return self._watcher.file_path if self._watcher else None

    @property
    def is_watching(self) -> bool:
        return self._watcher is not None

    async def _publish_tree(self, nodes: list[ConversationNode], file_path: str) -> None:
        await self._connections.broadcast(
            WsMessage(type="init", nodes=nodes, sessionFile=file_path, sessionId=Path(file_path).stem)
        )

    async def watch(self, session_file: str) -> None:
        """Begin watching `session_file`. Raises WatchError when the initial load fails."""
        async with self._lock:
            if self._watcher is not None:
                await self._watcher.stop()
                self._watcher = None
            watcher = self._watcher_factory(session_file, self._publish_tree)
            await watcher.start()
            self._watcher = watcher

    async def stop(self) -> bool:
        """Stop the active watch and tell subscribers to clear. False when nothing was watched."""
        async with self._lock:
            if self._watcher is None:
                return False
            await self._watcher.stop()
            self._watcher = None
        await self._connections.broadcast(WsMessage(type="clear"))
        return True

    async def shutdown(self) -> None:
        async with self._lock:
            if self._watcher is not None:
                await self._watcher.stop()
                self._watcher = None

    def current_snapshot(self) -> Optional[WsMessage]:
        """Full tree for a newly connected subscriber, or None when no watch is active."""
        watcher = self._watcher
        if watcher is None:
            return None
        return WsMessage(
            type="init",
            nodes=watcher.nodes(),
            sessionFile=watcher.file_path,
            sessionId=Path(watcher.file_path).stem,
        )


# Singleton instances
connection_manager = ConnectionManager()
watch_service = WatchService(connection_manager)
