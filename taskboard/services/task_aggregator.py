"""
Task Aggregation Service.

Fetches the tasks matching a filter and joins each one against a single
batched profile lookup, producing display-ready ``TaskWithProfiles``
records.

Query sequence (strictly ordered):
    1. ``TaskRepository.fetch_tasks`` with the filter predicate applied
       server-side, newest first.
    2. At most one ``ProfileRepository.fetch_summaries_by_ids`` for the
       distinct non-null profile ids of step 1 (skipped when empty).

A failure in step 1 is the caller's error.  A failure in step 2 only
degrades the join: every reference resolves to ``None``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Callable, Optional

from taskboard.errors import DirectoryError
from taskboard.logger import StructuredLogger
from taskboard.models.enums import TaskFilter, TaskListStatus
from taskboard.models.profile import ProfileSummary
from taskboard.models.task import Task, TaskListState, TaskWithProfiles
from taskboard.repositories.profile_repository import ProfileRepository
from taskboard.repositories.task_repository import TaskRepository
from taskboard.services.auth_context import AuthContext
from taskboard.services.base_service import BaseService

ProfileDirectory = dict[int, ProfileSummary]


def collect_profile_ids(tasks: Iterable[Task]) -> set[int]:
    """Distinct non-null assignee and creator ids across *tasks*."""
    ids: set[int] = set()
    for task in tasks:
        ids.update(task.referenced_profile_ids())
    return ids


def join_task(task: Task, directory: ProfileDirectory) -> TaskWithProfiles:
    """Attach the profile projections for *task*'s references.

    A null reference, or an id missing from *directory*, yields ``None``.
    """
    def _lookup(profile_id: Optional[int]) -> Optional[ProfileSummary]:
        return directory.get(profile_id) if profile_id is not None else None

    return TaskWithProfiles(
        **task.model_dump(),
        assigned_profile=_lookup(task.assign_to_profile_id),
        created_by_profile=_lookup(task.created_by_profile_id),
    )


class TaskAggregatorService(BaseService):
    """Produces denormalised task lists for the task views."""

    def __init__(
        self,
        task_repo: TaskRepository,
        profile_repo: ProfileRepository,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._task_repo = task_repo
        self._profile_repo = profile_repo

    def aggregate(
        self,
        task_filter: TaskFilter,
        current_profile_id: Optional[int],
    ) -> list[TaskWithProfiles]:
        """Fetch and join the tasks for *task_filter*.

        ``ASSIGNED_TO_ME`` and ``CREATED_BY_ME`` fall back to ``ALL`` when
        *current_profile_id* is ``None``.

        Raises:
            DirectoryError: The task query itself failed.
        """
        assigned_to: Optional[int] = None
        created_by: Optional[int] = None
        if current_profile_id is not None:
            if task_filter == TaskFilter.ASSIGNED_TO_ME:
                assigned_to = current_profile_id
            elif task_filter == TaskFilter.CREATED_BY_ME:
                created_by = current_profile_id

        tasks = self._task_repo.fetch_tasks(assigned_to=assigned_to, created_by=created_by)
        if not tasks:
            return []

        directory = self._lookup_profiles(collect_profile_ids(tasks))
        return [join_task(task, directory) for task in tasks]

    def _lookup_profiles(self, profile_ids: set[int]) -> ProfileDirectory:
        if not profile_ids:
            return {}
        try:
            summaries = self._profile_repo.fetch_summaries_by_ids(profile_ids)
        except DirectoryError as exc:
            self._logger.warning(
                "Profile lookup for %d task references failed; "
                "showing tasks without profile details: %s",
                len(profile_ids),
                exc,
            )
            return {}
        return {summary.id: summary for summary in summaries}


TaskFeedListener = Callable[[TaskListState], None]


class TaskFeed:
    """Presentation-facing task list state.

    Holds a ``TaskListState`` and re-runs the aggregation on demand.
    Overlapping refreshes are not deduplicated: whichever finishes last
    sets the state.  After ``close()`` late results are dropped.
    """

    def __init__(
        self,
        aggregator: TaskAggregatorService,
        logger: StructuredLogger,
        task_filter: TaskFilter = TaskFilter.ALL,
        current_profile_id: Optional[int] = None,
        on_change: Optional[TaskFeedListener] = None,
    ) -> None:
        self._aggregator = aggregator
        self._logger = logger
        self._lock: threading.RLock = threading.RLock()
        self._filter: TaskFilter = task_filter
        self._profile_id: Optional[int] = current_profile_id
        self._on_change = on_change
        self._state: TaskListState = TaskListState()
        self._closed: bool = False
        # Bumped on sign-out; refreshes started under an older value are dropped.
        self._generation: int = 0

    @property
    def state(self) -> TaskListState:
        with self._lock:
            return self._state

    @property
    def task_filter(self) -> TaskFilter:
        with self._lock:
            return self._filter

    @property
    def current_profile_id(self) -> Optional[int]:
        with self._lock:
            return self._profile_id

    def refresh(self) -> TaskListState:
        """Repeat the full fetch-and-join and publish the new state."""
        with self._lock:
            if self._closed:
                return self._state
            task_filter, profile_id = self._filter, self._profile_id
            generation = self._generation
            self._state = TaskListState(
                status=TaskListStatus.LOADING, tasks=self._state.tasks,
            )
        self._emit()

        try:
            tasks = self._aggregator.aggregate(task_filter, profile_id)
            new_state = TaskListState(status=TaskListStatus.READY, tasks=tasks)
        except DirectoryError as exc:
            self._logger.error("Error fetching tasks: %s", exc)
            new_state = TaskListState(
                status=TaskListStatus.ERROR, error_message=exc.message,
            )

        with self._lock:
            if self._closed:
                self._logger.debug("Task feed closed; dropping late result.")
                return self._state
            if generation != self._generation:
                self._logger.debug("Signed out during refresh; dropping result.")
                return self._state
            self._state = new_state
        self._emit()
        return new_state

    def set_filter(
        self,
        task_filter: TaskFilter,
        current_profile_id: Optional[int],
    ) -> TaskListState:
        with self._lock:
            self._filter = task_filter
            self._profile_id = current_profile_id
        return self.refresh()

    def notify_created(self) -> TaskListState:
        """Invalidate the cached list after a task was created and reload."""
        with self._lock:
            if not self._closed:
                self._state = TaskListState()
        return self.refresh()

    def follow(self, auth_context: AuthContext) -> Callable[[], None]:
        """Track *auth_context*: refresh whenever the signed-in profile changes.

        While identity is still loading the feed does not query.  Signing
        out clears the list and drops any refresh still in flight.
        Returns a callable that stops following.
        """
        def _on_auth_changed(ctx: AuthContext) -> None:
            if not ctx.is_logged_in:
                self._reset_signed_out()
                return
            if ctx.is_loading:
                return
            profile = ctx.profile
            profile_id = profile.id if profile is not None else None
            with self._lock:
                unchanged = (
                    profile_id == self._profile_id
                    and self._state.status != TaskListStatus.LOADING
                )
            if not unchanged:
                self.set_filter(self.task_filter, profile_id)

        remove = auth_context.add_listener(_on_auth_changed)
        _on_auth_changed(auth_context)
        return remove

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def _reset_signed_out(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._generation += 1
            self._profile_id = None
            changed = self._state != TaskListState()
            self._state = TaskListState()
        if changed:
            self._emit()

    def _emit(self) -> None:
        if self._on_change is None:
            return
        state = self.state
        try:
            self._on_change(state)
        except Exception as exc:
            self._logger.error("Task feed listener failed: %s", exc, exc_info=True)

