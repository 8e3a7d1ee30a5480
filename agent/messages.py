"""Conversation, tool call and stream event dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class ChatMessage:
    """One conversation turn. Immutable once appended to a history."""
    role: str
    content: str
    reasoning: str | None = None

    def to_dict(self) -> dict:
        data = {"role": self.role, "content": self.content}
        if self.reasoning:
            data["reasoning_content"] = self.reasoning
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ChatMessage":
        role = data.get("role")
        if role not in ROLES:
            raise ValueError(f"Invalid message role: {role!r}")
        content = data.get("content", "")
        if not isinstance(content, str):
            raise ValueError("Message content must be a string")
        reasoning = data.get("reasoning_content") or data.get("reasoning")
        return cls(role=role, content=content, reasoning=reasoning or None)


@dataclass(frozen=True)
class StreamDelta:
    """Incremental piece of a streamed completion."""
    content: str = ""
    reasoning: str = ""


@dataclass
class ToolCall:
    """Parsed tool invocation from model output."""
    name: str
    args: dict = field(default_factory=dict)


@dataclass
class ExecutionResult:
    """Uniform outcome of executing one tool call."""
    success: bool
    result: Any = None
    error: str | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"success": self.success}
        if self.success:
            data["result"] = self.result
        else:
            data["error"] = self.error
        return data


@dataclass
class AgentEvent:
    """Event emitted by the agent loop to its caller."""
    type: str  # content | reasoning | tool_start | tool_result | error | done
    content: str | None = None
    tool: str | None = None
    args: dict | None = None
    result: Any = None
    error: str | None = None
    success: bool | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"type": self.type}
        for key in ("content", "tool", "args", "result", "error", "success"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class AgentState:
    """Per-turn loop state, owned by the agent loop for one user turn."""
    messages: list[ChatMessage]
    max_steps: int = 25
    step_count: int = 0
    tool_steps: int = 0
    continuations: int = 0
    complete: bool = False

    def append(self, role: str, content: str, reasoning: str | None = None) -> None:
        self.messages.append(ChatMessage(role=role, content=content, reasoning=reasoning))
