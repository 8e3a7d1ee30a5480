"""
Relay tools: mutations applied by a remote engine client.

None of these run anything on the server. Each one packages its arguments as
a signal and hands it to the relay queue, returning at once. Whether the
remote side ever applies it is not observed here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from tools.base_tool import Tool, ToolContext, ToolKind, ToolParameter

logger = logging.getLogger(__name__)


@dataclass
class RelayRequest:
    """Opaque payload for a relay tool: the action name and its arguments."""
    action: str
    data: dict[str, Any] = field(default_factory=dict)


class RelayTool(Tool):
    """Base for tools whose effect is a queued signal."""

    kind = ToolKind.RELAY
    queued_message = 'Operation "{action}" queued for connected clients'
    untargeted_message = 'No delivery target: operation "{action}" was not queued'

    def build_args(self, raw: dict[str, Any]) -> RelayRequest:
        return RelayRequest(action=self.name, data=dict(raw))

    async def execute(self, args: RelayRequest, context: ToolContext) -> dict:
        result = {
            "queued": True,
            "action": args.action,
            "args": args.data,
            "message": self.queued_message.format(action=args.action),
        }
        if context.relay is None or not (context.credential or context.owner_id):
            logger.info("Relay tool %s has no delivery target; not dispatched", args.action)
            result["queued"] = False
            result["message"] = self.untargeted_message.format(action=args.action)
            return result

        sent = context.relay.send_signal(
            args.action,
            args.data,
            credential=context.credential,
            owner_id=context.owner_id,
        )
        if not sent.accepted:
            result["queued"] = False
            result["message"] = self.untargeted_message.format(action=args.action)
        result["signal_ids"] = sent.signal_ids
        result["delivered_to_live_count"] = sent.delivered_to_live_count
        return result


# ── Files ────────────────────────────────────────────────────────────

_PATH = ToolParameter("path", "string", True, "File path relative to project root")


class FileTool(RelayTool):
    group = "filesystem"
    queued_message = 'File operation "{action}" queued for connected clients'


class CreateFileTool(FileTool):
    name = "create_file"
    description = "Create a new file with the specified content"
    parameters = (_PATH, ToolParameter("content", "string", True, "File content"))


class UpdateFileTool(FileTool):
    name = "update_file"
    description = "Update an existing file with new content"
    parameters = (_PATH, ToolParameter("content", "string", True, "New file content"))


class DeleteFileTool(FileTool):
    name = "delete_file"
    description = "Delete a file"
    parameters = (_PATH,)


class ReadFileTool(FileTool):
    name = "read_file"
    description = "Read the content of a file"
    parameters = (_PATH,)


class SearchFilesTool(FileTool):
    name = "search_files"
    description = "Search for files in the project"
    parameters = (
        ToolParameter("query", "string", True, "Search query or pattern"),
        ToolParameter("fileTypes", "string", False, "File extensions to include, comma-separated"),
    )


class CreateFolderTool(FileTool):
    name = "create_folder"
    description = "Create a new folder"
    parameters = (
        ToolParameter("path", "string", True, "Folder path relative to project root"),
    )


# ── Engine objects ───────────────────────────────────────────────────

class ObjectTool(RelayTool):
    group = "objects"
    queued_message = 'Object operation "{action}" queued for connected clients'


class CreateObjectTool(ObjectTool):
    name = "create_object"
    description = "Create any engine object (parts, GUIs, folders, events). Never use for scripts"
    parameters = (
        ToolParameter("className", "string", True, "Class name (Part, Folder, RemoteEvent, etc.)"),
        ToolParameter("parent", "string", True, "Parent path (e.g. Workspace, ReplicatedStorage/Items)"),
        ToolParameter("name", "string", False, "Object name"),
        ToolParameter("properties", "object", False, "Key-value pairs for properties"),
        ToolParameter("tags", "string", False, "Comma-separated tags"),
    )


class UpdateObjectTool(ObjectTool):
    name = "update_object"
    description = "Update properties, parent or tags of an object (except scripts)"
    parameters = (
        ToolParameter("query", "string", True, "Name, path or tag to find the object"),
        ToolParameter("className", "string", False, "Filter by class type"),
        ToolParameter("properties", "object", False, "Properties to update"),
        ToolParameter("newParent", "string", False, "Move to new parent path"),
        ToolParameter("tags", "string", False, "Tags to add (prefix with + or -)"),
    )


class DeleteObjectTool(ObjectTool):
    name = "delete_object"
    description = "Delete an object safely (except scripts)"
    parameters = (
        ToolParameter("query", "string", True, "Name, path or tag to find the object"),
        ToolParameter("className", "string", False, "Filter by class type"),
        ToolParameter("recursive", "boolean", False, "Delete all children (default: false)"),
    )


class MoveObjectTool(ObjectTool):
    name = "move_object"
    description = "Move an object to a new parent or reorder it in the hierarchy"
    parameters = (
        ToolParameter("query", "string", True, "Object to move"),
        ToolParameter("newParent", "string", True, "Destination parent path"),
        ToolParameter("newIndex", "number", False, "Position in parent's children"),
    )


class CloneObjectTool(ObjectTool):
    name = "clone_object"
    description = "Duplicate an existing object including all children and properties"
    parameters = (
        ToolParameter("query", "string", True, "Object to clone"),
        ToolParameter("newParent", "string", False, "Parent for the cloned object"),
        ToolParameter("newName", "string", False, "Rename the clone"),
        ToolParameter("properties", "object", False, "Override specific properties"),
        ToolParameter("tags", "string", False, "Add tags to the clone"),
    )


class RunScriptTool(ObjectTool):
    name = "run_script"
    description = "Execute script code in the engine (requires user confirmation)"
    parameters = (
        ToolParameter("code", "string", True, "Code to execute"),
        ToolParameter("scriptType", "string", True, "Script type: server, client, or module"),
        ToolParameter("confirmation", "string", False, "Confirmation mode: accept, decline, or always"),
    )
    queued_message = "Script execution queued (requires user confirmation in the engine)"


# ── Searches ─────────────────────────────────────────────────────────

class RemoteSearchTool(RelayTool):
    group = "search"
    queued_message = 'Search "{action}" queued for connected clients'


class QuerySearchTool(RemoteSearchTool):
    name = "query_search"
    description = "Search for objects by name (glob or regex), class, tags or properties"
    parameters = (
        ToolParameter("name", "string", False, "Name pattern (glob like *.Part, or regex)"),
        ToolParameter("className", "string", False, "Filter by class type"),
        ToolParameter("parent", "string", False, "Search within specific parent"),
        ToolParameter("tags", "string", False, "Filter by tags"),
        ToolParameter("properties", "object", False, "Filter by property values"),
        ToolParameter("maxResults", "number", False, "Maximum results to return (default: 50)"),
    )


class GrepSearchTool(RemoteSearchTool):
    name = "grep_search"
    description = "Search for text inside scripts"
    parameters = (
        ToolParameter("pattern", "string", True, "Text or regex pattern to search"),
        ToolParameter("scriptType", "string", False, "Filter by script type: server, client, or module"),
        ToolParameter("parent", "string", False, "Search within specific parent"),
        ToolParameter("caseSensitive", "boolean", False, "Case-sensitive search (default: false)"),
        ToolParameter("maxResults", "number", False, "Maximum results (default: 100)"),
    )


class UnifiedSearchTool(RemoteSearchTool):
    name = "search"
    description = "Search instances, scripts and properties at once using text or regex"
    parameters = (
        ToolParameter("query", "string", True, "Search pattern (text or regex)"),
        ToolParameter("mode", "string", False, "Search mode: text (default), regex, or glob"),
        ToolParameter("searchIn", "string", False, "What to search: all (default), instances, scripts, properties"),
        ToolParameter("parent", "string", False, "Limit search to specific parent path"),
        ToolParameter("className", "string", False, "Filter by class type"),
        ToolParameter("caseSensitive", "boolean", False, "Case-sensitive search (default: false)"),
        ToolParameter("maxResults", "number", False, "Maximum results (default: 100)"),
    )


# ── Generic ──────────────────────────────────────────────────────────

class EmitSignalTool(RelayTool):
    name = "emit_signal"
    description = "Emit a signal to connected clients"
    group = "signals"
    parameters = (
        ToolParameter("action", "string", True, "Signal action type"),
        ToolParameter("payload", "object", False, "Signal payload data"),
    )
    queued_message = 'Signal "{action}" queued for connected clients'

    def build_args(self, raw: dict[str, Any]) -> RelayRequest:
        payload = raw.get("payload")
        if not isinstance(payload, dict):
            payload = {} if payload is None else {"value": payload}
        return RelayRequest(action=str(raw["action"]), data=payload)


RELAY_TOOLS = (
    CreateFileTool,
    UpdateFileTool,
    DeleteFileTool,
    ReadFileTool,
    SearchFilesTool,
    CreateFolderTool,
    CreateObjectTool,
    UpdateObjectTool,
    DeleteObjectTool,
    MoveObjectTool,
    CloneObjectTool,
    RunScriptTool,
    QuerySearchTool,
    GrepSearchTool,
    UnifiedSearchTool,
    EmitSignalTool,
)
