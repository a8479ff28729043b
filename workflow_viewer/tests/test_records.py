import json
import unittest

from workflow_viewer.parsers.records import classify_line, is_valid_json_line, parse_json_line


class ParseJsonLineTests(unittest.TestCase):
    def test_rejects_lines_without_object_braces(self) -> None:
        self.assertIsNone(parse_json_line('{"type":"user","uuid":"u1"'))
        self.assertIsNone(parse_json_line('"type":"user"}'))
        self.assertIsNone(parse_json_line("[1, 2, 3]"))
        self.assertIsNone(parse_json_line(""))
        self.assertIsNone(parse_json_line("   "))

    def test_rejects_invalid_json_between_braces(self) -> None:
        self.assertIsNone(parse_json_line("{not json}"))
        self.assertFalse(is_valid_json_line("{not json}"))

    def test_accepts_object_with_surrounding_whitespace(self) -> None:
        self.assertEqual(parse_json_line('  {"a": 1}  '), {"a": 1})
        self.assertTrue(is_valid_json_line('{"a": 1}'))


class ClassifyLineTests(unittest.TestCase):
    def test_user_record_fields(self) -> None:
        line = json.dumps(
            {
                "type": "user",
                "uuid": "u1",
                "parentUuid": None,
                "timestamp": "2026-02-16T10:00:00.000Z",
                "message": {"role": "user", "content": "Fix the bug"},
                "toolUseResult": {"stdout": "ok"},
            }
        )

        record = classify_line(line)
        self.assertIsNotNone(record)
        assert record is not None
        self.assertEqual(record.kind, "user")
        self.assertEqual(record.uuid, "u1")
        self.assertIsNone(record.parent_uuid)
        self.assertEqual(record.timestamp, "2026-02-16T10:00:00.000Z")
        self.assertEqual(record.message["content"], "Fix the bug")
        self.assertEqual(record.tool_use_result, {"stdout": "ok"})
        self.assertEqual(record.raw["uuid"], "u1")

    def test_assistant_record_keeps_parent_and_message_id(self) -> None:
        line = json.dumps(
            {
                "type": "assistant",
                "uuid": "a1",
                "parentUuid": "u1",
                "timestamp": "2026-02-16T10:00:01.000Z",
                "message": {"id": "msg_1", "role": "assistant", "content": []},
            }
        )

        record = classify_line(line)
        assert record is not None
        self.assertEqual(record.kind, "assistant")
        self.assertEqual(record.parent_uuid, "u1")
        self.assertEqual(record.message_id, "msg_1")

    def test_file_history_snapshot(self) -> None:
        line = json.dumps(
            {
                "type": "file-history-snapshot",
                "messageId": "m1",
                "snapshot": {"messageId": "m1", "timestamp": "2026-02-16T10:00:00.000Z"},
            }
        )

        record = classify_line(line)
        assert record is not None
        self.assertEqual(record.kind, "file-snapshot")
        self.assertEqual(record.message_id, "m1")
        self.assertEqual(record.timestamp, "2026-02-16T10:00:00.000Z")

    def test_unrecognized_shapes_are_dropped(self) -> None:
        self.assertIsNone(classify_line(json.dumps({"type": "summary", "summary": "x"})))
        self.assertIsNone(classify_line(json.dumps({"type": "user", "message": {"content": "no uuid"}})))
        self.assertIsNone(classify_line(json.dumps({"type": "assistant", "uuid": "a1", "message": "flat"})))
        self.assertIsNone(classify_line('{"type":"user","uuid":'))


if __name__ == "__main__":
    unittest.main()
