# tests/test_task_aggregator.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from taskboard.errors import ServiceError, TransportError
from taskboard.logger import StructuredLogger
from taskboard.models.enums import TaskFilter, TaskListStatus
from taskboard.models.profile import Profile
from taskboard.models.task import Task, TaskListState
from taskboard.services.auth_context import AuthContext
from taskboard.services.task_aggregator import (
    TaskAggregatorService,
    TaskFeed,
    collect_profile_ids,
)

from .conftest import make_session
from .fakes import FakeAuthGateway, FakeProfileRepository, FakeTaskRepository

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _task(task_id: int, assignee: int | None = None, creator: int | None = None,
          age_minutes: int = 0) -> Task:
    return Task(
        id=task_id,
        title=f"Task {task_id}",
        created_at=NOW - timedelta(minutes=age_minutes),
        assign_to_profile_id=assignee,
        created_by_profile_id=creator,
    )


def _summary_calls(repo: FakeProfileRepository) -> list:
    return [args for name, args in repo.calls if name == "fetch_summaries_by_ids"]


@pytest.fixture()
def seeded(task_repo: FakeTaskRepository, profile_repo: FakeProfileRepository) -> None:
    for pid, name in ((1, "alice"), (2, "bob"), (3, "carol")):
        profile_repo.rows[pid] = Profile(id=pid, username=name)
    for task in (
        _task(10, assignee=1, creator=2, age_minutes=30),
        _task(11, assignee=2, creator=2, age_minutes=20),
        _task(12, assignee=1, creator=3, age_minutes=10),
        _task(13, assignee=None, creator=None, age_minutes=0),
    ):
        task_repo.rows[task.id] = task


# ---------------------------------------------------------------------------
# aggregate()
# ---------------------------------------------------------------------------


def test_join_preserves_order_and_nulls(
    task_repo: FakeTaskRepository,
    profile_repo: FakeProfileRepository,
    aggregator: TaskAggregatorService,
) -> None:
    profile_repo.rows[5] = Profile(id=5, username="bob")
    task_repo.rows[1] = _task(1, assignee=5, age_minutes=0)
    task_repo.rows[2] = _task(2, assignee=None, age_minutes=5)

    result = aggregator.aggregate(TaskFilter.ALL, None)

    assert [t.id for t in result] == [1, 2]
    assert result[0].assigned_profile is not None
    assert result[0].assigned_profile.id == 5
    assert result[0].assigned_profile.username == "bob"
    assert result[1].assigned_profile is None


@pytest.mark.usefixtures("seeded")
def test_single_lookup_with_distinct_ids(
    profile_repo: FakeProfileRepository, aggregator: TaskAggregatorService
) -> None:
    result = aggregator.aggregate(TaskFilter.ALL, 1)

    assert [t.id for t in result] == [13, 12, 11, 10]
    assert _summary_calls(profile_repo) == [[1, 2, 3]]


@pytest.mark.usefixtures("seeded")
def test_assigned_to_me_filters_server_side(
    task_repo: FakeTaskRepository, aggregator: TaskAggregatorService
) -> None:
    result = aggregator.aggregate(TaskFilter.ASSIGNED_TO_ME, 1)

    assert [t.id for t in result] == [12, 10]
    assert task_repo.calls == [("fetch_tasks", (1, None))]
    assert all(t.assigned_profile and t.assigned_profile.username == "alice" for t in result)


@pytest.mark.usefixtures("seeded")
def test_created_by_me_filters_on_creator(aggregator: TaskAggregatorService) -> None:
    result = aggregator.aggregate(TaskFilter.CREATED_BY_ME, 2)
    assert [t.id for t in result] == [11, 10]


@pytest.mark.usefixtures("seeded")
@pytest.mark.parametrize("task_filter", [TaskFilter.ASSIGNED_TO_ME, TaskFilter.CREATED_BY_ME])
def test_personal_filters_without_profile_match_all(
    aggregator: TaskAggregatorService, task_filter: TaskFilter
) -> None:
    assert aggregator.aggregate(task_filter, None) == aggregator.aggregate(TaskFilter.ALL, None)


def test_no_tasks_means_no_profile_lookup(
    profile_repo: FakeProfileRepository, aggregator: TaskAggregatorService
) -> None:
    assert aggregator.aggregate(TaskFilter.ALL, 1) == []
    assert _summary_calls(profile_repo) == []


def test_tasks_without_references_skip_lookup(
    task_repo: FakeTaskRepository,
    profile_repo: FakeProfileRepository,
    aggregator: TaskAggregatorService,
) -> None:
    task_repo.rows[1] = _task(1)

    result = aggregator.aggregate(TaskFilter.ALL, None)

    assert len(result) == 1
    assert _summary_calls(profile_repo) == []


def test_dangling_reference_resolves_to_none(
    task_repo: FakeTaskRepository, aggregator: TaskAggregatorService
) -> None:
    task_repo.rows[1] = _task(1, assignee=404, creator=405)

    [joined] = aggregator.aggregate(TaskFilter.ALL, None)

    assert joined.assigned_profile is None
    assert joined.created_by_profile is None
    assert joined.assign_to_profile_id == 404


@pytest.mark.usefixtures("seeded")
def test_profile_lookup_failure_degrades_to_unjoined(
    profile_repo: FakeProfileRepository, aggregator: TaskAggregatorService
) -> None:
    profile_repo.summary_error = TransportError("timeout")

    result = aggregator.aggregate(TaskFilter.ALL, None)

    assert len(result) == 4
    assert all(t.assigned_profile is None and t.created_by_profile is None for t in result)


def test_task_query_failure_propagates(
    task_repo: FakeTaskRepository,
    profile_repo: FakeProfileRepository,
    aggregator: TaskAggregatorService,
) -> None:
    task_repo.fetch_error = ServiceError("relation does not exist")

    with pytest.raises(ServiceError):
        aggregator.aggregate(TaskFilter.ALL, None)
    assert _summary_calls(profile_repo) == []


def test_collect_profile_ids_skips_nulls() -> None:
    tasks = [_task(1, assignee=1, creator=2), _task(2, assignee=2), _task(3)]
    assert collect_profile_ids(tasks) == {1, 2}


# ---------------------------------------------------------------------------
# TaskFeed
# ---------------------------------------------------------------------------


@pytest.fixture()
def feed_states() -> list[TaskListState]:
    return []


@pytest.fixture()
def feed(
    aggregator: TaskAggregatorService,
    logger: StructuredLogger,
    feed_states: list[TaskListState],
) -> TaskFeed:
    return TaskFeed(aggregator=aggregator, logger=logger, on_change=feed_states.append)


def test_feed_starts_loading(feed: TaskFeed) -> None:
    assert feed.state.status == TaskListStatus.LOADING
    assert feed.state.tasks == []


@pytest.mark.usefixtures("seeded")
def test_feed_refresh_goes_loading_then_ready(
    feed: TaskFeed, feed_states: list[TaskListState]
) -> None:
    state = feed.refresh()

    assert state.status == TaskListStatus.READY
    assert len(state.tasks) == 4
    assert [s.status for s in feed_states] == [TaskListStatus.LOADING, TaskListStatus.READY]


def test_feed_error_state_carries_message(
    task_repo: FakeTaskRepository, feed: TaskFeed
) -> None:
    task_repo.fetch_error = TransportError("Network unreachable")

    state = feed.refresh()

    assert state.status == TaskListStatus.ERROR
    assert state.error_message == "Network unreachable"
    assert state.tasks == []


@pytest.mark.usefixtures("seeded")
def test_feed_set_filter_requeries(task_repo: FakeTaskRepository, feed: TaskFeed) -> None:
    state = feed.set_filter(TaskFilter.ASSIGNED_TO_ME, 1)

    assert [t.id for t in state.tasks] == [12, 10]
    assert feed.task_filter == TaskFilter.ASSIGNED_TO_ME
    assert feed.current_profile_id == 1


@pytest.mark.usefixtures("seeded")
def test_feed_notify_created_reloads(task_repo: FakeTaskRepository, feed: TaskFeed) -> None:
    feed.refresh()
    task_repo.rows[20] = _task(20, assignee=1, age_minutes=-5)

    state = feed.notify_created()

    assert state.tasks[0].id == 20


@pytest.mark.usefixtures("seeded")
def test_closed_feed_drops_late_result(
    task_repo: FakeTaskRepository,
    aggregator: TaskAggregatorService,
    logger: StructuredLogger,
) -> None:
    feed: TaskFeed
    original_fetch = task_repo.fetch_tasks

    def _close_mid_fetch(**kwargs: object) -> list[Task]:
        feed.close()
        return original_fetch(**kwargs)  # type: ignore[arg-type]

    task_repo.fetch_tasks = _close_mid_fetch  # type: ignore[method-assign]
    feed = TaskFeed(aggregator=aggregator, logger=logger)

    state = feed.refresh()

    assert state.status == TaskListStatus.LOADING
    assert feed.state.status == TaskListStatus.LOADING


def test_closed_feed_does_not_query(task_repo: FakeTaskRepository, feed: TaskFeed) -> None:
    feed.close()
    feed.refresh()
    assert task_repo.calls == []


@pytest.mark.usefixtures("seeded")
def test_feed_follows_signed_in_profile(
    gateway: FakeAuthGateway,
    task_repo: FakeTaskRepository,
    auth_context: AuthContext,
    aggregator: TaskAggregatorService,
    logger: StructuredLogger,
) -> None:
    # "alice" already exists with id 1.
    gateway.session = make_session("abc123", username="alice")
    feed = TaskFeed(aggregator=aggregator, logger=logger, task_filter=TaskFilter.ASSIGNED_TO_ME)

    with auth_context:
        stop = feed.follow(auth_context)
        assert feed.current_profile_id == 1
        assert [t.id for t in feed.state.tasks] == [12, 10]

        gateway.emit("SIGNED_OUT", None)
        calls_after_logout = len(task_repo.calls)
        stop()

    assert calls_after_logout == 1


def test_feed_does_not_query_while_signed_out(
    task_repo: FakeTaskRepository,
    auth_context: AuthContext,
    aggregator: TaskAggregatorService,
    logger: StructuredLogger,
) -> None:
    feed = TaskFeed(aggregator=aggregator, logger=logger)
    with auth_context:
        feed.follow(auth_context)
    assert task_repo.calls == []


@pytest.mark.usefixtures("seeded")
def test_sign_out_clears_followed_feed(
    gateway: FakeAuthGateway,
    auth_context: AuthContext,
    aggregator: TaskAggregatorService,
    logger: StructuredLogger,
) -> None:
    gateway.session = make_session("abc123", username="alice")
    states: list[TaskListState] = []
    feed = TaskFeed(
        aggregator=aggregator,
        logger=logger,
        task_filter=TaskFilter.ASSIGNED_TO_ME,
        on_change=states.append,
    )

    with auth_context:
        feed.follow(auth_context)
        assert [t.id for t in feed.state.tasks] == [12, 10]

        gateway.emit("SIGNED_OUT", None)

        assert feed.state.tasks == []
        assert feed.state.status == TaskListStatus.LOADING
        assert feed.current_profile_id is None
        assert states[-1] == TaskListState()


@pytest.mark.usefixtures("seeded")
def test_refresh_in_flight_at_sign_out_is_dropped(
    gateway: FakeAuthGateway,
    task_repo: FakeTaskRepository,
    auth_context: AuthContext,
    aggregator: TaskAggregatorService,
    logger: StructuredLogger,
) -> None:
    gateway.session = make_session("abc123", username="alice")
    feed = TaskFeed(aggregator=aggregator, logger=logger)
    original_fetch = task_repo.fetch_tasks

    def _sign_out_mid_fetch(**kwargs: object) -> list[Task]:
        gateway.emit("SIGNED_OUT", None)
        return original_fetch(**kwargs)  # type: ignore[arg-type]

    with auth_context:
        feed.follow(auth_context)
        assert feed.state.status == TaskListStatus.READY
        task_repo.fetch_tasks = _sign_out_mid_fetch  # type: ignore[method-assign]

        state = feed.refresh()

        assert state == TaskListState()
        assert feed.state.tasks == []


@pytest.mark.usefixtures("seeded")
def test_feed_loads_when_sign_in_overtakes_initial_fetch(
    gateway: FakeAuthGateway,
    task_repo: FakeTaskRepository,
    auth_context: AuthContext,
    aggregator: TaskAggregatorService,
    logger: StructuredLogger,
) -> None:
    alice = make_session("abc123", username="alice")

    def _sign_in_during_fetch() -> None:
        gateway.on_get_session = None
        gateway.emit("SIGNED_IN", alice)

    gateway.on_get_session = _sign_in_during_fetch
    feed = TaskFeed(aggregator=aggregator, logger=logger, task_filter=TaskFilter.ASSIGNED_TO_ME)
    feed.follow(auth_context)

    with auth_context:
        assert not auth_context.is_loading
        assert auth_context.profile is not None and auth_context.profile.id == 1
        assert task_repo.calls == [("fetch_tasks", (1, None))]
        assert feed.state.status == TaskListStatus.READY
        assert [t.id for t in feed.state.tasks] == [12, 10]
