"""Authoritative in-memory node set for the watched log."""
from __future__ import annotations

from typing import Iterator, Optional

from workflow_viewer.models import ConversationNode
from workflow_viewer.services.tree_builder import build_display_tree


class NodeRegistry:
    """Maps node id to node. Stored nodes never carry children; every
    snapshot derives a fresh tree from the current entries."""

    def __init__(self) -> None:
        self._nodes: dict[str, ConversationNode] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[ConversationNode]:
        return iter(list(self._nodes.values()))

    def get(self, node_id: str) -> Optional[ConversationNode]:
        return self._nodes.get(node_id)

    def upsert(self, node: ConversationNode) -> bool:
        """Insert or overwrite by id (last write wins). Returns True for a new id."""
        is_new = node.id not in self._nodes
        if node.children:
            node = node.model_copy(update={"children": []})
        self._nodes[node.id] = node
        return is_new

    def clear(self) -> None:
        self._nodes.clear()

    def snapshot(self) -> list[ConversationNode]:
        return build_display_tree(list(self._nodes.values()))
