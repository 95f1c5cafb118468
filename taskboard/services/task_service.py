"""
Task Service.

Form-layer operations on tasks: create, reassign, toggle completion, and
the profile directory shown in the assignee picker.

All methods return typed ``TaskResult`` or ``ValidationResult`` models;
the presentation layer never inspects raw exceptions.  Callers refresh
their ``TaskFeed`` (``notify_created`` / ``refresh``) after a successful
result.
"""

from __future__ import annotations

from typing import Optional

from taskboard.errors import DirectoryError, NotFoundError, TransportError
from taskboard.logger import StructuredLogger
from taskboard.models.enums import TaskErrorCode
from taskboard.models.profile import Profile
from taskboard.models.results import TaskResult, ValidationResult
from taskboard.models.task import TaskDraft
from taskboard.repositories.profile_repository import ProfileRepository
from taskboard.repositories.task_repository import TaskRepository
from taskboard.services.base_service import BaseService
from taskboard.utils.audit import log_audit_event
from taskboard.utils.dates import DATE_FORMAT_HINT, parse_due_date

_MAX_TITLE_LENGTH: int = 200


class TaskService(BaseService):
    """Create, assign and complete tasks on behalf of the signed-in profile.

    Parameters
    ----------
    task_repo:
        Task data access.
    profile_repo:
        Profile data access (assignee directory).
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        task_repo: TaskRepository,
        profile_repo: ProfileRepository,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._task_repo = task_repo
        self._profile_repo = profile_repo

    # ==================================================================
    # Validation helpers
    # ==================================================================

    @staticmethod
    def validate_title(title: str) -> ValidationResult:
        stripped = title.strip()
        if not stripped:
            return ValidationResult(is_valid=False, error_message="Please enter a task title")
        if len(stripped) > _MAX_TITLE_LENGTH:
            return ValidationResult(
                is_valid=False,
                error_message=f"Task title must be at most {_MAX_TITLE_LENGTH} characters",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_due_date(text: str) -> ValidationResult:
        """Blank is valid (no due date); anything else must parse."""
        if not text.strip():
            return ValidationResult(is_valid=True)
        if parse_due_date(text) is None:
            return ValidationResult(
                is_valid=False,
                error_message=(
                    f"Invalid date format. Please use {DATE_FORMAT_HINT} "
                    "(e.g., 12/31/2024)"
                ),
            )
        return ValidationResult(is_valid=True)

    # ==================================================================
    # Queries
    # ==================================================================

    def list_assignable_profiles(self) -> list[Profile]:
        """All profiles ordered by username.

        Raises:
            DirectoryError: The profile query failed.
        """
        return self._profile_repo.list_all()

    # ==================================================================
    # Commands
    # ==================================================================

    def create_task(
        self,
        title: str,
        description: str,
        due_date_text: str,
        assign_to_profile_id: Optional[int],
        created_by_profile_id: Optional[int],
    ) -> TaskResult:
        """Validate the form input and insert the task."""
        if created_by_profile_id is None:
            return TaskResult(
                success=False,
                error_code=TaskErrorCode.NOT_AUTHENTICATED,
                error_message="User not authenticated",
            )

        for check in (self.validate_title(title), self.validate_due_date(due_date_text)):
            if not check.is_valid:
                return TaskResult(
                    success=False,
                    error_code=TaskErrorCode.VALIDATION_ERROR,
                    error_message=check.error_message,
                )

        if assign_to_profile_id is None:
            return TaskResult(
                success=False,
                error_code=TaskErrorCode.VALIDATION_ERROR,
                error_message="Please select a user to assign the task to",
            )

        draft = TaskDraft(
            title=title.strip(),
            description=description.strip() or None,
            due_date=parse_due_date(due_date_text) if due_date_text.strip() else None,
            assign_to_profile_id=assign_to_profile_id,
            created_by_profile_id=created_by_profile_id,
        )

        try:
            task = self._task_repo.insert(draft)
        except DirectoryError as exc:
            return self._failure("create task", exc)

        log_audit_event(
            logger=self._logger,
            action="TASK_CREATE",
            entity_type="Task",
            entity_id=task.id,
            actor_id=created_by_profile_id,
            details={"title": task.title, "assign_to_profile_id": assign_to_profile_id},
        )
        return TaskResult(success=True, task=task)

    def assign_task(self, task_id: int, profile_id: int, actor_id: int) -> TaskResult:
        try:
            task = self._task_repo.update_assignee(task_id, profile_id)
        except DirectoryError as exc:
            return self._failure("assign task", exc)

        log_audit_event(
            logger=self._logger,
            action="TASK_ASSIGN",
            entity_type="Task",
            entity_id=task_id,
            actor_id=actor_id,
            details={"assign_to_profile_id": profile_id},
        )
        return TaskResult(success=True, task=task)

    def set_complete(self, task_id: int, is_complete: bool, actor_id: int) -> TaskResult:
        try:
            task = self._task_repo.update_completion(task_id, is_complete)
        except DirectoryError as exc:
            return self._failure("update task", exc)

        log_audit_event(
            logger=self._logger,
            action="TASK_COMPLETE" if is_complete else "TASK_REOPEN",
            entity_type="Task",
            entity_id=task_id,
            actor_id=actor_id,
        )
        return TaskResult(success=True, task=task)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _failure(self, action: str, exc: DirectoryError) -> TaskResult:
        self._logger.error("Failed to %s: %s", action, exc)
        if isinstance(exc, NotFoundError):
            code = TaskErrorCode.NOT_FOUND
        elif isinstance(exc, TransportError):
            code = TaskErrorCode.NETWORK_ERROR
        else:
            code = TaskErrorCode.UNKNOWN_ERROR
        return TaskResult(
            success=False,
            error_code=code,
            error_message=f"Failed to {action}. Please try again.",
        )
