"""Tool catalogue and lookup registry."""

import logging
from tools.base_tool import Tool, ToolDefinition, ToolKind
from tools.project_tools import (
    CompleteTaskTool,
    CreateTaskTool,
    ListProjectsTool,
    SelectProjectTool,
    UpdateTaskTool,
)
from tools.relay_tools import RELAY_TOOLS
from tools.web_tools import WebOutlineTool, WebSearchTool

logger = logging.getLogger(__name__)


BUILTIN_TOOLS: tuple[type[Tool], ...] = (
    CreateTaskTool,
    UpdateTaskTool,
    CompleteTaskTool,
    ListProjectsTool,
    SelectProjectTool,
    WebSearchTool,
    WebOutlineTool,
    *RELAY_TOOLS,
)


class ToolRegistry:
    """Closed set of tool classes keyed by name."""

    def __init__(self, tool_classes=BUILTIN_TOOLS):
        self._tool_classes: dict[str, type[Tool]] = {}
        for cls in tool_classes:
            self.register(cls)

    def register(self, cls: type[Tool]) -> None:
        if not cls.name:
            raise ValueError(f"Tool class {cls.__name__} has no name")
        if cls.name in self._tool_classes:
            logger.warning("Tool %s registered twice; keeping the later class", cls.name)
        self._tool_classes[cls.name] = cls

    def get_tool(self, name: str) -> Tool | None:
        """Instantiate and return a tool by name."""
        cls = self._tool_classes.get(name)
        if cls:
            return cls()
        return None

    def get_definition(self, name: str) -> ToolDefinition | None:
        cls = self._tool_classes.get(name)
        return cls.definition() if cls else None

    def definitions(self, kind: ToolKind | None = None) -> list[ToolDefinition]:
        defs = [cls.definition() for cls in self._tool_classes.values()]
        if kind is not None:
            defs = [d for d in defs if d.kind == kind]
        return defs

    def get_tool_descriptions(self) -> str:
        """Generate markdown listing of all tools for the system prompt, grouped."""
        by_group: dict[str, list[str]] = {}
        for cls in self._tool_classes.values():
            by_group.setdefault(cls.group or "other", []).append(cls().get_prompt_description())
        sections = []
        for group in sorted(by_group):
            sections.append(f"## {group.replace('_', ' ').title()}\n")
            sections.extend(by_group[group])
        return "\n".join(sections)

    @property
    def tool_names(self) -> list[str]:
        """List all registered tool names."""
        return sorted(self._tool_classes.keys())

