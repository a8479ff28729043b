"""Pydantic models matching the frontend TypeScript types."""
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Any, Literal, Optional, Union

NodeKind = Literal[
    "user",
    "assistant",
    "thinking",
    "tool_call",
    "tool_result",
    "agent",
    "skill",
    "command",
    "system",
]

# Node kinds that represent the assistant invoking a capability.
INVOCATION_KINDS: frozenset[str] = frozenset({"tool_call", "agent", "skill", "command"})

# Node kinds that open a new conversational turn.
TURN_STARTER_KINDS: frozenset[str] = frozenset({"user", "system"})


# ── Conversation tree models ───────────────────────────────────────

class ToolUseResult(BaseModel):
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    exitCode: Optional[int] = None


class ConversationNode(BaseModel):
    id: str
    parentId: Optional[str] = None
    timestamp: str = ""
    type: NodeKind
    summary: str = ""
    content: Optional[Union[dict[str, Any], str]] = None
    toolName: Optional[str] = None
    toolInput: Optional[dict[str, Any]] = None
    toolResult: Optional[ToolUseResult] = None
    agentType: Optional[str] = None   # For 'agent' nodes: the subagent_type (Explore, Plan, etc.)
    skillName: Optional[str] = None   # For 'skill' nodes
    commandName: Optional[str] = None  # For 'command' nodes: the slash command
    children: list[ConversationNode] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)


# ── Session listing models ─────────────────────────────────────────

class SessionInfo(BaseModel):
    sessionId: str
    filePath: str
    projectPath: str
    lastModified: str
    fileSize: int = 0
    messageCount: int = 0
    toolCount: int = 0
    firstMessage: str = ""
    duration: int = 0  # milliseconds between first and last timestamp
    isLive: bool = False  # modified within the live window


# ── Transport models ───────────────────────────────────────────────

class WsMessage(BaseModel):
    type: Literal["init", "update", "clear"]
    nodes: Optional[list[ConversationNode]] = None
    node: Optional[ConversationNode] = None
    sessionId: Optional[str] = None
    sessionFile: Optional[str] = None


class WatchRequest(BaseModel):
    sessionFile: str = ""


class WatchResponse(BaseModel):
    success: bool = True
    sessionFile: Optional[str] = None
