import unittest
from unittest.mock import patch

from fastapi import WebSocketDisconnect

from workflow_viewer.models import ConversationNode, WsMessage
from workflow_viewer.routers import live as live_router
from workflow_viewer.services.live_updates import ConnectionManager, WatchService
from workflow_viewer.services.session_watcher import WatchError


class _FakeSocket:
    def __init__(self, fail: bool = False, incoming: list[str] | None = None, receive_error: Exception | None = None) -> None:
        self.accepted = False
        self.fail = fail
        self.receive_error = receive_error
        self.sent: list[dict] = []
        self.incoming = list(incoming or [])

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, payload: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(payload)

    async def receive_text(self) -> str:
        if self.incoming:
            return self.incoming.pop(0)
        if self.receive_error is not None:
            raise self.receive_error
        raise WebSocketDisconnect(code=1000)


class _FakeWatcher:
    def __init__(self, file_path: str, on_tree, fail: bool = False) -> None:
        self.file_path = file_path
        self.on_tree = on_tree
        self.fail = fail
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        if self.fail:
            raise WatchError(f"Failed to read session file {self.file_path}")
        self.started = True
        await self.on_tree(self.nodes(), self.file_path)

    async def stop(self) -> None:
        self.stopped = True

    def nodes(self) -> list[ConversationNode]:
        return [ConversationNode(id="u1", type="user", summary="hello")]


class ConnectionManagerTests(unittest.IsolatedAsyncioTestCase):
    async def test_broadcast_reaches_clients_and_drops_dead_ones(self) -> None:
        manager = ConnectionManager()
        healthy = _FakeSocket()
        dead = _FakeSocket(fail=True)
        await manager.connect(healthy)
        await manager.connect(dead)
        self.assertTrue(healthy.accepted)

        await manager.broadcast(WsMessage(type="clear"))

        self.assertEqual(healthy.sent, [{"type": "clear", "nodes": None, "node": None, "sessionId": None, "sessionFile": None}])
        self.assertEqual(manager.active_connections, {healthy})

    async def test_disconnect_is_idempotent(self) -> None:
        manager = ConnectionManager()
        socket = _FakeSocket()
        await manager.connect(socket)
        await manager.disconnect(socket)
        await manager.disconnect(socket)
        self.assertEqual(manager.active_connections, set())

    async def test_send_to_failure_disconnects(self) -> None:
        manager = ConnectionManager()
        socket = _FakeSocket(fail=True)
        await manager.connect(socket)
        await manager.send_to(socket, WsMessage(type="clear"))
        self.assertNotIn(socket, manager.active_connections)


class WatchServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.connections = ConnectionManager()
        self.client = _FakeSocket()
        self.watchers: list[_FakeWatcher] = []
        self.fail_next = False

    def _factory(self, file_path, on_tree):
        watcher = _FakeWatcher(file_path, on_tree, fail=self.fail_next)
        self.watchers.append(watcher)
        return watcher

    async def test_watch_publishes_init_tree(self) -> None:
        await self.connections.connect(self.client)
        service = WatchService(self.connections, watcher_factory=self._factory)

        await service.watch("/logs/project/session-1.jsonl")

        self.assertTrue(service.is_watching)
        self.assertEqual(service.current_file, "/logs/project/session-1.jsonl")
        message = self.client.sent[-1]
        self.assertEqual(message["type"], "init")
        self.assertEqual(message["sessionId"], "session-1")
        self.assertEqual(message["sessionFile"], "/logs/project/session-1.jsonl")
        self.assertEqual([node["id"] for node in message["nodes"]], ["u1"])

    async def test_new_watch_stops_previous(self) -> None:
        service = WatchService(self.connections, watcher_factory=self._factory)
        await service.watch("/logs/a.jsonl")
        await service.watch("/logs/b.jsonl")

        self.assertTrue(self.watchers[0].stopped)
        self.assertFalse(self.watchers[1].stopped)
        self.assertEqual(service.current_file, "/logs/b.jsonl")

    async def test_failed_watch_leaves_nothing_active(self) -> None:
        service = WatchService(self.connections, watcher_factory=self._factory)
        await service.watch("/logs/a.jsonl")
        self.fail_next = True

        with self.assertRaises(WatchError):
            await service.watch("/logs/missing.jsonl")
        self.assertTrue(self.watchers[0].stopped)
        self.assertFalse(service.is_watching)
        self.assertIsNone(service.current_snapshot())

    async def test_stop_broadcasts_clear_only_when_watching(self) -> None:
        await self.connections.connect(self.client)
        service = WatchService(self.connections, watcher_factory=self._factory)

        self.assertFalse(await service.stop())
        self.assertEqual(self.client.sent, [])

        await service.watch("/logs/a.jsonl")
        self.assertTrue(await service.stop())
        self.assertEqual(self.client.sent[-1]["type"], "clear")
        self.assertTrue(self.watchers[0].stopped)
        self.assertIsNone(service.current_file)

    async def test_shutdown_stops_without_broadcast(self) -> None:
        await self.connections.connect(self.client)
        service = WatchService(self.connections, watcher_factory=self._factory)
        await service.watch("/logs/a.jsonl")
        sent_before = len(self.client.sent)

        await service.shutdown()
        self.assertTrue(self.watchers[0].stopped)
        self.assertEqual(len(self.client.sent), sent_before)

    async def test_current_snapshot(self) -> None:
        service = WatchService(self.connections, watcher_factory=self._factory)
        self.assertIsNone(service.current_snapshot())

        await service.watch("/logs/a.jsonl")
        snapshot = service.current_snapshot()
        assert snapshot is not None
        self.assertEqual(snapshot.type, "init")
        self.assertEqual(snapshot.sessionId, "a")
        self.assertEqual([node.id for node in snapshot.nodes or []], ["u1"])


class LiveRouterTests(unittest.IsolatedAsyncioTestCase):
    async def test_new_subscriber_receives_current_tree(self) -> None:
        connections = ConnectionManager()
        service = WatchService(connections, watcher_factory=lambda path, on_tree: _FakeWatcher(path, on_tree))
        await service.watch("/logs/a.jsonl")
        socket = _FakeSocket(incoming=["ping"])

        with patch.object(live_router, "connection_manager", connections), patch.object(live_router, "watch_service", service):
            await live_router.live_updates(socket)

        self.assertEqual(socket.sent[0]["type"], "init")
        self.assertEqual(socket.sent[0]["sessionFile"], "/logs/a.jsonl")
        self.assertEqual(connections.active_connections, set())

    async def test_abnormal_close_removes_subscriber(self) -> None:
        connections = ConnectionManager()
        service = WatchService(connections)
        socket = _FakeSocket(receive_error=RuntimeError("connection reset"))

        with patch.object(live_router, "connection_manager", connections), patch.object(live_router, "watch_service", service):
            with self.assertRaises(RuntimeError):
                await live_router.live_updates(socket)

        self.assertEqual(connections.active_connections, set())

    async def test_subscriber_without_watch_receives_nothing(self) -> None:
        connections = ConnectionManager()
        service = WatchService(connections)
        socket = _FakeSocket()

        with patch.object(live_router, "connection_manager", connections), patch.object(live_router, "watch_service", service):
            await live_router.live_updates(socket)

        self.assertTrue(socket.accepted)
        self.assertEqual(socket.sent, [])


if __name__ == "__main__":
    unittest.main()
