"""Tool definitions and the abstract base class every tool derives from."""

from __future__ import annotations

import dataclasses
import json
import typing
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from agent.config import ToolExecutionConfig
    from agent.project_store import ProjectStore
    from relay.service import RelayService


class ToolKind(str, Enum):
    """How a tool takes effect."""
    LOCAL = "local"        # synchronous mutation of caller-owned storage
    OUTBOUND = "outbound"  # bounded HTTP call to an auxiliary service
    RELAY = "relay"        # signal queued for a remote client


@dataclass(frozen=True)
class ToolParameter:
    name: str
    type: str  # string | number | boolean | object
    required: bool
    description: str


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    kind: ToolKind
    group: str
    parameters: tuple[ToolParameter, ...] = ()

    @property
    def required_args(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "kind": self.kind.value,
            "group": self.group,
            "parameters": [dataclasses.asdict(p) for p in self.parameters],
        }


@dataclass
class ToolContext:
    """Per-turn collaborators and identifiers handed to every tool."""
    project_id: str | None = None
    user_id: str | None = None
    credential: str | None = None
    owner_id: str | None = None
    project_store: "ProjectStore | None" = None
    relay: "RelayService | None" = None
    settings: "ToolExecutionConfig | None" = None
    data: dict = field(default_factory=dict)


class Tool(ABC):
    """Base class for all tools. Subclasses declare their schema as class attributes."""

    name: str = ""
    description: str = ""
    kind: ToolKind = ToolKind.LOCAL
    group: str = ""
    parameters: tuple[ToolParameter, ...] = ()
    args_type: type | None = None

    @classmethod
    def definition(cls) -> ToolDefinition:
        return ToolDefinition(
            name=cls.name,
            description=cls.description,
            kind=cls.kind,
            group=cls.group,
            parameters=tuple(cls.parameters),
        )

    def build_args(self, raw: dict[str, Any]) -> Any:
        """Turn the validated string-keyed bag into this tool's typed record."""
        if self.args_type is None:
            return None
        hints = typing.get_type_hints(self.args_type)
        values = {}
        for f in dataclasses.fields(self.args_type):
            if f.name in raw:
                values[f.name] = _as_declared(raw[f.name], hints.get(f.name))
        return self.args_type(**values)

    @abstractmethod
    async def execute(self, args: Any, context: ToolContext) -> Any:
        """Run the tool and return a JSON-serializable result. Raise on failure."""
        ...

    def get_prompt_description(self) -> str:
        lines = [f"### {self.name}", self.description]
        if self.parameters:
            lines.append("Arguments:")
            for p in self.parameters:
                flag = "required" if p.required else "optional"
                lines.append(f"- `{p.name}` ({p.type}, {flag}): {p.description}")
        else:
            lines.append("No arguments.")
        return "\n".join(lines) + "\n"


def _as_declared(value: Any, hint: Any) -> Any:
    """Argument coercion guesses types; give string fields their string back."""
    if value is None or hint is None:
        return value
    wants_str = hint is str or str in typing.get_args(hint)
    if wants_str and not isinstance(value, str):
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value)
    return value
