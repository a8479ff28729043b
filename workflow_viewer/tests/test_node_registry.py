import unittest

from workflow_viewer.models import ConversationNode
from workflow_viewer.services.node_registry import NodeRegistry


class NodeRegistryTests(unittest.TestCase):
    def test_upsert_reports_new_ids_and_last_write_wins(self) -> None:
        registry = NodeRegistry()
        self.assertTrue(registry.upsert(ConversationNode(id="u1", type="user", summary="first")))
        self.assertFalse(registry.upsert(ConversationNode(id="u1", type="user", summary="second")))

        self.assertEqual(len(registry), 1)
        self.assertIn("u1", registry)
        stored = registry.get("u1")
        assert stored is not None
        self.assertEqual(stored.summary, "second")

    def test_upsert_drops_children(self) -> None:
        registry = NodeRegistry()
        child = ConversationNode(id="c1", type="thinking")
        registry.upsert(ConversationNode(id="a1", type="assistant", children=[child]))

        stored = registry.get("a1")
        assert stored is not None
        self.assertEqual(stored.children, [])
        self.assertNotIn("c1", registry)

    def test_clear_and_empty_snapshot(self) -> None:
        registry = NodeRegistry()
        registry.upsert(ConversationNode(id="u1", type="user", timestamp="2026-02-16T10:00:00Z"))
        self.assertEqual([node.id for node in registry.snapshot()], ["u1"])

        registry.clear()
        self.assertEqual(len(registry), 0)
        self.assertIsNone(registry.get("u1"))
        self.assertEqual(registry.snapshot(), [])


if __name__ == "__main__":
    unittest.main()
