# tests/conftest.py

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

# Configure before taskboard.config is first imported: no network, logs in tmp.
os.environ.setdefault("SUPABASE_URL", "")
os.environ.setdefault("SUPABASE_ANON_KEY", "")
os.environ.setdefault("LOG_FILE", str(Path(tempfile.gettempdir()) / "taskboard-tests.log"))

from taskboard.auth import SessionTracker  # noqa: E402
from taskboard.logger import StructuredLogger  # noqa: E402
from taskboard.models.session import AuthSession, SessionUser  # noqa: E402
from taskboard.services.auth_context import AuthContext  # noqa: E402
from taskboard.services.profile_provisioning import ProfileProvisioningService  # noqa: E402
from taskboard.services.task_aggregator import TaskAggregatorService  # noqa: E402

from .fakes import FakeAuthGateway, FakeProfileRepository, FakeTaskRepository  # noqa: E402


def make_session(
    user_id: str = "abc123",
    email: str | None = None,
    **metadata: str,
) -> AuthSession:
    """Build a session snapshot the way the auth gateway would."""
    return AuthSession(
        access_token=f"token-{user_id}",
        user=SessionUser(id=user_id, email=email, metadata=metadata),
    )


@pytest.fixture()
def logger() -> StructuredLogger:
    return StructuredLogger(name="taskboard.tests")


@pytest.fixture()
def profile_repo() -> FakeProfileRepository:
    return FakeProfileRepository()


@pytest.fixture()
def task_repo() -> FakeTaskRepository:
    return FakeTaskRepository()


@pytest.fixture()
def gateway() -> FakeAuthGateway:
    return FakeAuthGateway()


@pytest.fixture()
def provisioner(
    profile_repo: FakeProfileRepository, logger: StructuredLogger
) -> ProfileProvisioningService:
    return ProfileProvisioningService(repo=profile_repo, logger=logger)  # type: ignore[arg-type]


@pytest.fixture()
def tracker(gateway: FakeAuthGateway, logger: StructuredLogger) -> SessionTracker:
    return SessionTracker(gateway=gateway, logger=logger)


@pytest.fixture()
def auth_context(
    tracker: SessionTracker,
    provisioner: ProfileProvisioningService,
    logger: StructuredLogger,
) -> AuthContext:
    return AuthContext(tracker=tracker, provisioner=provisioner, logger=logger)


@pytest.fixture()
def aggregator(
    task_repo: FakeTaskRepository,
    profile_repo: FakeProfileRepository,
    logger: StructuredLogger,
) -> TaskAggregatorService:
    return TaskAggregatorService(
        task_repo=task_repo,  # type: ignore[arg-type]
        profile_repo=profile_repo,  # type: ignore[arg-type]
        logger=logger,
    )
