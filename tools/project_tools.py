"""Local tools: project and task CRUD against the caller's ProjectStore."""

from __future__ import annotations

from dataclasses import dataclass

from agent.exceptions import ToolExecutionError
from tools.base_tool import Tool, ToolContext, ToolKind, ToolParameter


@dataclass
class CreateTaskArgs:
    title: str
    description: str | None = None


@dataclass
class UpdateTaskArgs:
    id: str
    status: str | None = None
    title: str | None = None
    description: str | None = None


@dataclass
class TaskIdArgs:
    id: str


@dataclass
class ProjectIdArgs:
    id: str


def _store(context: ToolContext):
    if context.project_store is None:
        raise ToolExecutionError("Project storage is not available")
    return context.project_store


class CreateTaskTool(Tool):
    name = "create_task"
    description = "Create a new task"
    kind = ToolKind.LOCAL
    group = "tasks"
    parameters = (
        ToolParameter("title", "string", True, "Task title"),
        ToolParameter("description", "string", False, "Task description"),
    )
    args_type = CreateTaskArgs

    async def execute(self, args: CreateTaskArgs, context: ToolContext) -> dict:
        if not context.user_id or not context.project_id:
            raise ToolExecutionError("User ID and Project ID required for create_task")
        task = _store(context).create_task(
            project_id=context.project_id,
            user_id=context.user_id,
            title=args.title,
            description=args.description,
        )
        return {"created": True, "task": task}


class UpdateTaskTool(Tool):
    name = "update_task"
    description = "Update an existing task"
    kind = ToolKind.LOCAL
    group = "tasks"
    parameters = (
        ToolParameter("id", "string", True, "Task ID"),
        ToolParameter("status", "string", False, "New status: pending, in_progress, blocked, completed, cancelled"),
        ToolParameter("title", "string", False, "New title"),
        ToolParameter("description", "string", False, "New description"),
    )
    args_type = UpdateTaskArgs

    async def execute(self, args: UpdateTaskArgs, context: ToolContext) -> dict:
        updates = {}
        if args.status:
            updates["status"] = args.status
        if args.title:
            updates["title"] = args.title
        if args.description is not None:
            updates["description"] = args.description
        try:
            task = _store(context).update_task(args.id, **updates)
        except KeyError as e:
            raise ToolExecutionError(e.args[0]) from e
        return {"updated": True, "task": task}


class CompleteTaskTool(Tool):
    name = "complete_task"
    description = "Mark a task as completed"
    kind = ToolKind.LOCAL
    group = "tasks"
    parameters = (
        ToolParameter("id", "string", True, "Task ID"),
    )
    args_type = TaskIdArgs

    async def execute(self, args: TaskIdArgs, context: ToolContext) -> dict:
        try:
            _store(context).update_task(args.id, status="completed")
        except KeyError as e:
            raise ToolExecutionError(e.args[0]) from e
        return {"completed": True, "id": args.id}


class ListProjectsTool(Tool):
    name = "list_projects"
    description = "List all available projects"
    kind = ToolKind.LOCAL
    group = "projects"

    async def execute(self, args: None, context: ToolContext) -> dict:
        if not context.user_id:
            raise ToolExecutionError("User ID required for list_projects")
        return {"projects": _store(context).list_user_projects(context.user_id)}


class SelectProjectTool(Tool):
    name = "select_project"
    description = "Select a project as active"
    kind = ToolKind.LOCAL
    group = "projects"
    parameters = (
        ToolParameter("id", "string", True, "Project ID"),
    )
    args_type = ProjectIdArgs

    async def execute(self, args: ProjectIdArgs, context: ToolContext) -> dict:
        project = _store(context).get_project(args.id)
        if project is None:
            raise ToolExecutionError(f"Project not found: {args.id}")
        # Later tool calls in this turn act on the selected project.
        context.project_id = project["id"]
        return {"selected": True, "project": project}
