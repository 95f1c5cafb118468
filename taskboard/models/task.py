"""
Task Models.

``Task`` mirrors a row of the ``tasks`` table.  ``TaskWithProfiles`` is
the denormalised read model produced by the task aggregator; it is built
fresh on every aggregation and never written back.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from taskboard.models.enums import TaskListStatus
from taskboard.models.profile import ProfileSummary


class Task(BaseModel):
    """A task row.  Profile references may be ``None`` on legacy rows."""

    id: int
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    is_complete: bool = False
    created_at: Optional[datetime] = None
    assign_to_profile_id: Optional[int] = None
    created_by_profile_id: Optional[int] = None

    model_config = {"from_attributes": True}

    def referenced_profile_ids(self) -> list[int]:
        """Non-null profile ids referenced by this task (assignee first)."""
        return [
            pid
            for pid in (self.assign_to_profile_id, self.created_by_profile_id)
            if pid is not None
        ]


class TaskWithProfiles(Task):
    """A task joined with the display data of its two profile references.

    A reference that is ``None`` on the task, or that the profile lookup
    did not return, is ``None`` here as well.
    """

    assigned_profile: Optional[ProfileSummary] = None
    created_by_profile: Optional[ProfileSummary] = None

    model_config = {"frozen": True, "from_attributes": True}


class TaskDraft(BaseModel):
    """Validated payload for inserting a new task."""

    title: str = Field(min_length=1)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    is_complete: bool = False
    assign_to_profile_id: int
    created_by_profile_id: int


class TaskListState(BaseModel):
    """Presentation state of a task list.

    Exactly one of the three shapes is meaningful at a time:
    ``LOADING`` (``tasks`` holds the previous list, if any),
    ``ERROR`` (``error_message`` set) or ``READY`` (``tasks`` set).
    """

    status: TaskListStatus = TaskListStatus.LOADING
    tasks: list[TaskWithProfiles] = Field(default_factory=list)
    error_message: Optional[str] = None

    model_config = {"frozen": True}
