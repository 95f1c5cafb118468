"""
Task Repository.

Handles all task data access against the Directory Service.  Filter
predicates are applied server-side; rows always come back ordered by
``created_at`` descending.
"""

from __future__ import annotations

from typing import Any, Optional

from taskboard.database import DatabaseManager
from taskboard.errors import NotFoundError, ServiceError
from taskboard.logger import StructuredLogger
from taskboard.models.task import Task, TaskDraft
from taskboard.repositories.base_repository import BaseRepository


class TaskRepository(BaseRepository):
    """Data access layer for Task entities."""

    TABLE = "tasks"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def fetch_tasks(
        self,
        assigned_to: Optional[int] = None,
        created_by: Optional[int] = None,
    ) -> list[Task]:
        """Fetch tasks, newest first, optionally filtered by profile reference."""
        def _op() -> list[Task]:
            query = self.supabase.table(self.TABLE).select("*")
            if assigned_to is not None:
                query = query.eq("assign_to_profile_id", assigned_to)
            if created_by is not None:
                query = query.eq("created_by_profile_id", created_by)
            response = query.order("created_at", desc=True).execute()
            return [Task(**row) for row in response.data or []]

        return self._execute(_op, operation_name="fetch_tasks (tasks)")

    def insert(self, draft: TaskDraft) -> Task:
        """Insert a task and return the stored row."""
        operation = "insert (tasks)"
        data = draft.model_dump(mode="json")

        def _op() -> Task:
            response = self.supabase.table(self.TABLE).insert(data).execute()
            if not response.data:
                raise ServiceError(f"{operation}: insert returned no row")
            return Task(**response.data[0])

        task = self._execute(_op, operation_name=operation)
        self._logger.info("Task inserted: %s", task.id)
        return task

    def update_assignee(self, task_id: int, profile_id: int) -> Task:
        return self._update(task_id, {"assign_to_profile_id": profile_id}, "update_assignee")

    def update_completion(self, task_id: int, is_complete: bool) -> Task:
        return self._update(task_id, {"is_complete": is_complete}, "update_completion")

    def _update(self, task_id: int, changes: dict[str, Any], name: str) -> Task:
        operation = f"{name} (tasks)"

        def _op() -> Task:
            response = (
                self.supabase.table(self.TABLE)
                .update(changes)
                .eq("id", task_id)
                .execute()
            )
            if not response.data:
                raise NotFoundError(f"{operation}: no task with id {task_id}")
            return Task(**response.data[0])

        return self._execute(_op, operation_name=operation)
