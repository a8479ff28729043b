"""Expand classified log records into display nodes."""
from __future__ import annotations

from collections import Counter
from typing import Any, Optional

from workflow_viewer.models import ConversationNode, ToolUseResult
from workflow_viewer.parsers.boilerplate import classify_user_text
from workflow_viewer.parsers.records import LogRecord
from workflow_viewer.parsers.text import to_json_text, tool_result_to_text, truncate

_AGENT_TOOL_NAMES = {"Task", "Agent"}

# Input key used for the one-line summary of common tools.
_TOOL_SUMMARY_KEYS: dict[str, tuple[str, ...]] = {
    "Bash": ("command",),
    "Read": ("file_path",),
    "Write": ("file_path",),
    "Edit": ("file_path",),
    "MultiEdit": ("file_path",),
    "Glob": ("pattern",),
    "Grep": ("pattern",),
    "Task": ("description", "prompt"),
    "Agent": ("description", "prompt"),
    "WebFetch": ("url",),
    "WebSearch": ("query",),
}


def tool_node_id(record_uuid: str, tool_use_id: str) -> str:
    return f"{record_uuid}-tool-{tool_use_id}"


def _first_str(values: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = values.get(key)
        if value:
            return str(value)
    return ""


def _coerce_tool_use_result(value: Any) -> Optional[ToolUseResult]:
    if not isinstance(value, dict):
        return None
    stdout = value.get("stdout")
    stderr = value.get("stderr")
    exit_code = value.get("exitCode")
    if not any(isinstance(v, str) for v in (stdout, stderr)) and not isinstance(exit_code, int):
        return None
    return ToolUseResult(
        stdout=stdout if isinstance(stdout, str) else None,
        stderr=stderr if isinstance(stderr, str) else None,
        exitCode=exit_code if isinstance(exit_code, int) and not isinstance(exit_code, bool) else None,
    )


def tool_result_summary(text: str, is_error: bool) -> str:
    if is_error:
        return f"Error: {truncate(text, 80)}"
    lines = [line for line in text.split("\n") if line.strip()]
    if len(lines) > 3:
        return f"{len(lines)} lines of output"
    return truncate(text.replace("\n", " "), 100)


def tool_summary(name: str, tool_input: dict[str, Any]) -> str:
    if name == "TodoWrite":
        return "Updating todo list"
    keys = _TOOL_SUMMARY_KEYS.get(name)
    if keys:
        return truncate(_first_str(tool_input, keys), 60)
    return truncate(to_json_text(tool_input), 60)


def _tool_result_nodes(record: LogRecord, content: list[Any]) -> list[ConversationNode]:
    nodes: list[ConversationNode] = []
    exit_code_source = _coerce_tool_use_result(record.tool_use_result)
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "tool_result":
            continue
        tool_use_id = block.get("tool_use_id")
        if not isinstance(tool_use_id, str) or not tool_use_id:
            continue
        text = tool_result_to_text(block.get("content"))
        is_error = bool(block.get("is_error", False))
        result = ToolUseResult(stdout=None if is_error else text, stderr=text if is_error else None)
        if exit_code_source is not None and exit_code_source.exitCode is not None:
            result.exitCode = exit_code_source.exitCode
        node_id = record.uuid if not nodes else f"{record.uuid}-result-{tool_use_id}"
        nodes.append(ConversationNode(
            id=node_id,
            parentId=tool_node_id(record.parent_uuid or "", tool_use_id),
            timestamp=record.timestamp,
            type="tool_result",
            summary=tool_result_summary(text, is_error),
            content=text,
            toolResult=result,
            raw=record.raw,
        ))
    return nodes


def user_nodes(record: LogRecord) -> list[ConversationNode]:
    content = record.message.get("content")
    if not isinstance(content, (str, list)):
        return []

    if content:
        first = content[0]
        if isinstance(first, dict) and first.get("type") == "tool_result":
            return _tool_result_nodes(record, content)

    text = content if isinstance(content, str) else to_json_text(content)
    verdict = classify_user_text(text)
    if verdict.action == "skip":
        return []

    is_system = verdict.action == "system"
    return [ConversationNode(
        id=record.uuid,
        parentId=record.parent_uuid,
        timestamp=record.timestamp,
        type="system" if is_system else "user",
        summary=verdict.summary if is_system else truncate(text, 100),
        content=text,
        raw=record.raw,
    )]


def _tool_node(record: LogRecord, block: dict[str, Any]) -> ConversationNode:
    name = str(block.get("name") or "")
    tool_input = block.get("input") if isinstance(block.get("input"), dict) else {}
    base: dict[str, Any] = {
        "id": tool_node_id(record.uuid, str(block.get("id") or "")),
        "parentId": record.parent_uuid,
        "timestamp": record.timestamp,
        "content": block,
        "toolName": name,
        "toolInput": tool_input,
        "toolResult": _coerce_tool_use_result(record.tool_use_result),
        "raw": record.raw,
    }

    if name in _AGENT_TOOL_NAMES:
        return ConversationNode(
            type="agent",
            summary=truncate(_first_str(tool_input, ("description", "prompt")), 80),
            agentType=str(tool_input.get("subagent_type") or "unknown"),
            **base,
        )
    if name == "Skill":
        skill_name = str(tool_input.get("skill") or "unknown")
        return ConversationNode(type="skill", summary=skill_name, skillName=skill_name, **base)
    if name == "SlashCommand":
        command = str(tool_input.get("command") or "unknown")
        return ConversationNode(type="command", summary=command, commandName=command, **base)

    return ConversationNode(type="tool_call", summary=f"{name}: {tool_summary(name, tool_input)}", **base)


def assistant_nodes(record: LogRecord) -> list[ConversationNode]:
    content = record.message.get("content")
    if not isinstance(content, list):
        return []

    nodes: list[ConversationNode] = []
    seen: Counter[str] = Counter()

    def segment_id(base_id: str) -> str:
        # Repeated segments of one kind in the same record get a numeric suffix.
        count = seen[base_id]
        seen[base_id] += 1
        return base_id if count == 0 else f"{base_id}-{count}"

    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "thinking":
            nodes.append(ConversationNode(
                id=segment_id(f"{record.uuid}-thinking"),
                parentId=record.parent_uuid,
                timestamp=record.timestamp,
                type="thinking",
                summary=truncate(str(block.get("thinking") or ""), 100),
                content=block,
                raw=record.raw,
            ))
        elif block_type == "text":
            nodes.append(ConversationNode(
                id=segment_id(f"{record.uuid}-text"),
                parentId=record.parent_uuid,
                timestamp=record.timestamp,
                type="assistant",
                summary=truncate(str(block.get("text") or ""), 100),
                content=block,
                raw=record.raw,
            ))
        elif block_type == "tool_use":
            node = _tool_node(record, block)
            node.id = segment_id(node.id)
            nodes.append(node)

    return nodes


def expand_record(record: LogRecord) -> list[ConversationNode]:
    """Turn one record into zero or more nodes. File snapshots never produce nodes."""
    if record.kind == "user":
        return user_nodes(record)
    if record.kind == "assistant":
        return assistant_nodes(record)
    return []
