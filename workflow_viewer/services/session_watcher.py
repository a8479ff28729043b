"""Live watcher for one session log using watchfiles.

Reads the log once on start, then re-runs a read-parse-rebuild-notify cycle
each time watchfiles reports a settled change to the file.
"""
from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

from watchfiles import Change, awatch

from workflow_viewer import config
from workflow_viewer.models import ConversationNode
from workflow_viewer.observability import record_rebuild, start_span
from workflow_viewer.parsers.nodes import expand_record
from workflow_viewer.services.line_tracker import LineTracker
from workflow_viewer.services.node_registry import NodeRegistry

logger = logging.getLogger("workflow_viewer.watcher")

TreeCallback = Callable[[list[ConversationNode], str], Awaitable[None]]


class WatchError(RuntimeError):
    """The watched log could not be loaded."""


class SessionWatcher:
    """Tails one JSONL session log and pushes the rebuilt tree on change.

    Cycles never overlap: each settled change batch from `watchfiles` runs
    one cycle inline in the watch loop before the next batch is taken.
    """

    def __init__(
        self,
        file_path: str | Path,
        on_tree: TreeCallback,
        *,
        debounce_ms: int = config.WATCH_DEBOUNCE_MS,
        step_ms: int = config.WATCH_STEP_MS,
    ):
        self._path = Path(file_path)
        self._on_tree = on_tree
        self._debounce_ms = debounce_ms
        self._step_ms = step_ms
        self._tracker = LineTracker()
        self._registry = NodeRegistry()
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False
        # Bumped on stop so reads that were in flight are discarded.
        self._generation = 0

    @property
    def file_path(self) -> str:
        return str(self._path)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def registry(self) -> NodeRegistry:
        return self._registry

    @property
    def tracker(self) -> LineTracker:
        return self._tracker

    def nodes(self) -> list[ConversationNode]:
        return self._registry.snapshot()

    async def start(self) -> None:
        """Load the log and start watching it. Raises WatchError if the read fails."""
        if self._running:
            logger.warning("Session watcher already running for %s", self._path)
            return

        generation = self._generation
        try:
            content = await self._read()
        except OSError as exc:
            logger.error("Failed to read session file %s: %s", self._path, exc)
            raise WatchError(f"Failed to read session file {self._path}: {exc}") from exc
        if generation != self._generation:
            return

        self._ingest(content)
        self._running = True
        self._stop_event = asyncio.Event()
        await self._notify(generation)

        self._task = asyncio.create_task(self._watch_loop(self._stop_event))
        logger.info("Session watcher started for %s (%d nodes)", self._path, len(self._registry))

    async def stop(self) -> None:
        """Stop watching and drop all state so a restart is a fresh load."""
        self._generation += 1
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._stop_event = None
        self._registry.clear()
        self._tracker.reset()
        logger.info("Session watcher stopped for %s", self._path)

    async def poll(self) -> bool:
        """Run one read-parse-rebuild-notify cycle. Returns True when subscribers were notified.

        A failed read leaves the previous state untouched; the next change retries.
        """
        generation = self._generation
        try:
            content = await self._read()
        except OSError as exc:
            logger.warning("Error reading new content from %s: %s", self._path, exc)
            return False
        if generation != self._generation:
            return False

        if self._ingest(content) == 0:
            return False
        return await self._notify(generation)

    async def _read(self) -> str:
        # A flush can stop inside a multibyte character; the replaced tail fails line validation.
        return await asyncio.to_thread(self._path.read_text, encoding="utf-8", errors="replace")

    def _ingest(self, content: str) -> int:
        produced = 0
        for record in self._tracker.feed(content):
            for node in expand_record(record):
                self._registry.upsert(node)
                produced += 1
        return produced

    async def _notify(self, generation: int) -> bool:
        if generation != self._generation:
            return False
        started = time.perf_counter()
        with start_span("workflow_viewer.rebuild", {"file": str(self._path), "registry.size": len(self._registry)}):
            nodes = self._registry.snapshot()
        record_rebuild("ok", (time.perf_counter() - started) * 1000.0)
        await self._on_tree(nodes, str(self._path))
        return True

    def _is_watched_change(self, change: Change, path: str) -> bool:
        return change != Change.deleted and Path(path).resolve() == self._path.resolve()

    async def _watch_loop(self, stop_event: asyncio.Event) -> None:
        """Main watching loop. Watches the log's directory, filtered to the log itself."""
        logger.info("Watching %s", self._path)
        try:
            async for _changes in awatch(
                self._path.parent,
                watch_filter=self._is_watched_change,
                debounce=self._debounce_ms,
                step=self._step_ms,
                stop_event=stop_event,
                recursive=False,
            ):
                if stop_event.is_set():
                    break
                try:
                    await self.poll()
                except Exception:
                    logger.exception("Error rebuilding tree for %s", self._path)
        except asyncio.CancelledError:
            logger.info("Session watcher task cancelled")
        except Exception as e:
            logger.error(f"Session watcher error: {e}")
        finally:
            self._running = False
