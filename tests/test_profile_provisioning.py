# tests/test_profile_provisioning.py

from __future__ import annotations

import logging
import threading

import pytest

from taskboard.errors import (
    InvalidTransitionError,
    NotFoundError,
    SchemaError,
    ServiceError,
    TransportError,
)
from taskboard.models.enums import ProvisioningEvent, ProvisioningState
from taskboard.models.profile import Profile
from taskboard.services.profile_provisioning import (
    ProfileProvisioningService,
    ProvisioningMachine,
)

from .fakes import FakeProfileRepository

S = ProvisioningState


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


def test_machine_happy_path_through_creation() -> None:
    machine = ProvisioningMachine()
    machine.fire(ProvisioningEvent.SESSION_STARTED)
    machine.fire(ProvisioningEvent.NOT_FOUND)
    machine.fire(ProvisioningEvent.CREATED)
    assert machine.history == [S.IDLE, S.RESOLVING, S.CREATING, S.READY]


def test_machine_rejects_illegal_event() -> None:
    machine = ProvisioningMachine()
    with pytest.raises(InvalidTransitionError):
        machine.fire(ProvisioningEvent.CREATED)
    assert machine.state == S.IDLE


def test_machine_conflict_only_legal_while_creating() -> None:
    machine = ProvisioningMachine()
    machine.fire(ProvisioningEvent.SESSION_STARTED)
    with pytest.raises(InvalidTransitionError):
        machine.fire(ProvisioningEvent.CONFLICT)


def test_machine_session_ended_returns_to_idle_from_any_state() -> None:
    machine = ProvisioningMachine()
    machine.fire(ProvisioningEvent.SESSION_STARTED)
    machine.fire(ProvisioningEvent.NOT_FOUND)
    assert machine.fire(ProvisioningEvent.SESSION_ENDED) == S.IDLE


def test_machine_can_restart_from_terminal_states() -> None:
    machine = ProvisioningMachine()
    machine.fire(ProvisioningEvent.SESSION_STARTED)
    machine.fire(ProvisioningEvent.ERROR)
    assert machine.state == S.FAILED
    assert machine.fire(ProvisioningEvent.SESSION_STARTED) == S.RESOLVING


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------


def test_existing_profile_is_returned_without_insert(
    profile_repo: FakeProfileRepository, provisioner: ProfileProvisioningService
) -> None:
    profile_repo.rows[7] = Profile(id=7, username="bob")

    result = provisioner.provision("bob")

    assert result.is_ready
    assert result.profile is not None and result.profile.id == 7
    assert profile_repo.call_names() == ["fetch_by_username"]


def test_missing_profile_is_created_once(
    profile_repo: FakeProfileRepository, provisioner: ProfileProvisioningService
) -> None:
    machine = ProvisioningMachine()

    result = provisioner.provision("alice", machine=machine)

    assert result.is_ready
    assert result.profile is not None and result.profile.username == "alice"
    assert len(profile_repo.by_username("alice")) == 1
    assert machine.history == [S.IDLE, S.RESOLVING, S.CREATING, S.READY]


def test_created_profile_has_no_push_token_and_a_timestamp(
    profile_repo: FakeProfileRepository, provisioner: ProfileProvisioningService
) -> None:
    result = provisioner.provision("alice")
    assert result.profile is not None
    assert result.profile.expo_push_token is None
    assert result.profile.created_at is not None


def test_creation_writes_audit_event(
    provisioner: ProfileProvisioningService, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO):
        provisioner.provision("alice")
    assert any("PROFILE_CREATE" in r.getMessage() for r in caplog.records)


def test_lost_insert_race_converges_on_winner(
    profile_repo: FakeProfileRepository, provisioner: ProfileProvisioningService
) -> None:
    other_device = ProfileProvisioningService(
        repo=profile_repo, logger=provisioner._logger,  # type: ignore[arg-type]
    )
    winner: list = []

    def _race(username: str) -> None:
        # The other device completes its whole sign-in between our miss and our insert.
        profile_repo.before_insert = None
        winner.append(other_device.provision(username))

    profile_repo.before_insert = _race
    machine = ProvisioningMachine()

    result = provisioner.provision("alice", machine=machine)

    assert result.is_ready
    assert winner[0].is_ready
    assert result.profile is not None and winner[0].profile is not None
    assert result.profile.id == winner[0].profile.id
    assert len(profile_repo.by_username("alice")) == 1
    assert machine.history == [S.IDLE, S.RESOLVING, S.CREATING, S.RECOVERING, S.READY]


def test_concurrent_first_logins_share_one_profile(
    profile_repo: FakeProfileRepository, provisioner: ProfileProvisioningService
) -> None:
    # Both devices have missed the lookup before either insert runs.
    barrier = threading.Barrier(2, timeout=5)
    profile_repo.before_insert = lambda username: barrier.wait()
    results: list = []
    machines = [ProvisioningMachine(), ProvisioningMachine()]

    def _sign_in(machine: ProvisioningMachine) -> None:
        results.append(provisioner.provision("alice", machine=machine))

    threads = [threading.Thread(target=_sign_in, args=(m,)) for m in machines]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(results) == 2
    assert all(r.is_ready for r in results)
    assert results[0].profile.id == results[1].profile.id
    assert len(profile_repo.by_username("alice")) == 1
    assert profile_repo.call_names().count("insert") == 2
    recovered = [m for m in machines if S.RECOVERING in m.history]
    assert len(recovered) == 1
    assert recovered[0].history == [S.IDLE, S.RESOLVING, S.CREATING, S.RECOVERING, S.READY]


def test_schema_error_is_not_retried_and_logged_critical(
    profile_repo: FakeProfileRepository,
    provisioner: ProfileProvisioningService,
    caplog: pytest.LogCaptureFixture,
) -> None:
    profile_repo.insert_errors.append(
        SchemaError("invalid input syntax for type bigint", code="22P02")
    )

    with caplog.at_level(logging.WARNING):
        result = provisioner.provision("alice")

    assert result.state == S.FAILED
    assert result.profile is None
    assert profile_repo.call_names() == ["fetch_by_username", "insert"]
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)


def test_lookup_failure_fails_without_insert(
    profile_repo: FakeProfileRepository, provisioner: ProfileProvisioningService
) -> None:
    profile_repo.fetch_errors.append(TransportError("connection refused"))

    result = provisioner.provision("alice")

    assert result.state == S.FAILED
    assert result.profile is None
    assert result.error == "connection refused"
    assert "insert" not in profile_repo.call_names()


def test_other_insert_error_fails(
    profile_repo: FakeProfileRepository, provisioner: ProfileProvisioningService
) -> None:
    profile_repo.insert_errors.append(ServiceError("permission denied", code="42501"))

    result = provisioner.provision("alice")

    assert result.state == S.FAILED
    assert result.profile is None


def test_recovery_that_finds_nothing_fails(
    profile_repo: FakeProfileRepository, provisioner: ProfileProvisioningService
) -> None:
    def _phantom_conflict(username: str) -> None:
        # Row is visible to the constraint but not to the re-fetch.
        profile_repo.rows[99] = Profile(id=99, username=username)
        profile_repo.fetch_errors.append(NotFoundError("no rows", code="PGRST116"))

    profile_repo.before_insert = _phantom_conflict

    result = provisioner.provision("alice")

    assert result.state == S.FAILED
    assert result.profile is None
    assert profile_repo.call_names() == ["fetch_by_username", "insert", "fetch_by_username"]


def test_unexpected_exception_ends_in_failed(
    profile_repo: FakeProfileRepository, provisioner: ProfileProvisioningService
) -> None:
    profile_repo.fetch_errors.append(ValueError("boom"))

    result = provisioner.provision("alice")

    assert result.state == S.FAILED
    assert result.error is not None and "boom" in result.error


def test_register_push_token_updates_profile(
    profile_repo: FakeProfileRepository, provisioner: ProfileProvisioningService
) -> None:
    profile = Profile(id=3, username="carol")
    profile_repo.rows[3] = profile

    updated = provisioner.register_push_token(profile, "ExponentPushToken[abc]")

    assert updated is not None
    assert updated.expo_push_token == "ExponentPushToken[abc]"


def test_register_push_token_failure_returns_none(
    provisioner: ProfileProvisioningService,
) -> None:
    assert provisioner.register_push_token(Profile(id=404, username="ghost"), "t") is None


def test_first_login_race_for_resolved_username(
    profile_repo: FakeProfileRepository, provisioner: ProfileProvisioningService
) -> None:
    from taskboard.identity import resolve_username

    from .conftest import make_session

    username = resolve_username(make_session("abc123", email="jane@x.com"))
    assert username == "jane"

    second: list = []

    def _second_device(name: str) -> None:
        profile_repo.before_insert = None
        second.append(provisioner.provision(name))

    profile_repo.before_insert = _second_device
    first = provisioner.provision(username)

    assert first.profile is not None and second[0].profile is not None
    assert first.profile.id == second[0].profile.id
    assert [p.username for p in profile_repo.rows.values()] == ["jane"]
