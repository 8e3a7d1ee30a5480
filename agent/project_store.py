"""SQLite storage for projects and tasks, the state local tools mutate."""

from __future__ import annotations

import os
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any


TASK_STATUSES = ("pending", "in_progress", "blocked", "completed", "cancelled")


class ProjectStore:
    """SQLite-backed store for projects and their tasks."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._ensure_directory()
        self._init_db()

    # ── Projects ─────────────────────────────────────────────────────

    def create_project(self, user_id: str, name: str, description: str | None = None) -> dict[str, Any]:
        """Create a project owned by user_id."""
        project_id = uuid.uuid4().hex[:12]
        now = self._now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO projects (id, user_id, name, description, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (project_id, user_id, name, description, now, now),
            )
        return self.get_project(project_id)

    def get_project(self, project_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE id = ?",
                (project_id,),
            ).fetchone()
        return dict(row) if row else None

    def list_user_projects(self, user_id: str) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM projects WHERE user_id = ? ORDER BY updated_at DESC, created_at DESC",
                (user_id,),
            ).fetchall()
        return [dict(r) for r in rows]

    # ── Tasks ────────────────────────────────────────────────────────

    def create_task(
        self,
        project_id: str,
        user_id: str,
        title: str,
        description: str | None = None,
    ) -> dict[str, Any]:
        """Create a pending task in a project."""
        task_id = uuid.uuid4().hex[:12]
        now = self._now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tasks (id, project_id, user_id, title, description, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, 'pending', ?, ?)
                """,
                (task_id, project_id, user_id, title, description, now, now),
            )
            conn.execute(
                "UPDATE projects SET updated_at = ? WHERE id = ?",
                (now, project_id),
            )
        return self.get_task(task_id)

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ?",
                (task_id,),
            ).fetchone()
        return dict(row) if row else None

    def update_task(self, task_id: str, **updates: Any) -> dict[str, Any]:
        """Update title, description or status. Raises KeyError for unknown tasks."""
        allowed = {k: v for k, v in updates.items() if k in ("title", "description", "status")}
        status = allowed.get("status")
        if status is not None and status not in TASK_STATUSES:
            raise ValueError(
                f"Invalid status '{status}'. Use one of: {', '.join(TASK_STATUSES)}"
            )

        with self._connect() as conn:
            row = conn.execute("SELECT id FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if row is None:
                raise KeyError(f"Task not found: {task_id}")
            if allowed:
                assignments = ", ".join(f"{column} = ?" for column in allowed)
                conn.execute(
                    f"UPDATE tasks SET {assignments}, updated_at = ? WHERE id = ?",
                    (*allowed.values(), self._now(), task_id),
                )
        return self.get_task(task_id)

    def list_project_tasks(self, project_id: str, status: str | None = None) -> list[dict[str, Any]]:
        query = "SELECT * FROM tasks WHERE project_id = ?"
        params: tuple = (project_id,)
        if status:
            query += " AND status = ?"
            params += (status,)
        query += " ORDER BY created_at ASC, rowid ASC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [dict(r) for r in rows]

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(project_id) REFERENCES projects(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_projects_user ON projects(user_id);
                CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id);
                """
            )

    def _ensure_directory(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.db_path))
        os.makedirs(directory, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
