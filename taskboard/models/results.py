"""
Service Result Models.

Typed results returned by the provisioning and task services so the
presentation layer never inspects raw exceptions.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from taskboard.models.enums import ProvisioningState, TaskErrorCode
from taskboard.models.profile import Profile
from taskboard.models.task import Task


class ProvisioningResult(BaseModel):
    """Outcome of one provisioning run.

    Attributes
    ----------
    state:
        ``READY`` or ``FAILED`` (``IDLE`` when the run was discarded).
    profile:
        The unique profile for the username, or ``None`` unless ``READY``.
    error:
        Human-readable failure description, ``None`` on success.
    """

    state: ProvisioningState
    profile: Optional[Profile] = None
    error: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.state == ProvisioningState.READY


class ValidationResult(BaseModel):
    """Result of a single form-field validation check."""

    is_valid: bool
    error_message: Optional[str] = None


class TaskResult(BaseModel):
    """Unified response for task create / assign / complete operations."""

    success: bool
    error_code: Optional[TaskErrorCode] = None
    error_message: Optional[str] = None
    task: Optional[Task] = None
