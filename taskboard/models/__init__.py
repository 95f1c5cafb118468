"""
Data Models Package.

Re-exports all Pydantic models:
    from taskboard.models import Profile, ProfileSummary, Task, TaskWithProfiles
    from taskboard.models import TaskFilter, ProvisioningState
"""

from __future__ import annotations

from taskboard.models.enums import (
    ProvisioningEvent,
    ProvisioningState,
    TaskErrorCode,
    TaskFilter,
    TaskListStatus,
)
from taskboard.models.profile import Profile, ProfileSummary
from taskboard.models.results import ProvisioningResult, TaskResult, ValidationResult
from taskboard.models.session import AuthSession, SessionUser
from taskboard.models.task import Task, TaskDraft, TaskListState, TaskWithProfiles

__all__ = [
    "ProvisioningEvent",
    "ProvisioningState",
    "TaskErrorCode",
    "TaskFilter",
    "TaskListStatus",
    "Profile",
    "ProfileSummary",
    "ProvisioningResult",
    "TaskResult",
    "ValidationResult",
    "AuthSession",
    "SessionUser",
    "Task",
    "TaskDraft",
    "TaskListState",
    "TaskWithProfiles",
]
