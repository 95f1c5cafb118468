"""
Business Logic Services Package.

Services depend on the Repository layer for data access and on the
session tracker for identity.

The ``create_services()`` factory wires every repository and service
together, returning a typed dict that the application layer can consume
without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import TypedDict

from taskboard.auth import SessionTracker
from taskboard.auth_gateway import SupabaseAuthGateway
from taskboard.config import AppConfig
from taskboard.database import DatabaseManager
from taskboard.logger import StructuredLogger, get_logger
from taskboard.models.enums import TaskFilter
from taskboard.repositories.profile_repository import ProfileRepository
from taskboard.repositories.task_repository import TaskRepository
from taskboard.services.auth_context import AuthContext
from taskboard.services.profile_provisioning import ProfileProvisioningService
from taskboard.services.task_aggregator import TaskAggregatorService, TaskFeed
from taskboard.services.task_service import TaskService


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    session_tracker: SessionTracker
    auth_context: AuthContext
    profile_provisioning_service: ProfileProvisioningService
    task_aggregator_service: TaskAggregatorService
    task_service: TaskService


def create_services(db: DatabaseManager, config: AppConfig) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    entry point calls this once at startup; nothing is started here, the
    caller owns ``auth_context.start()`` / ``stop()``.

    Args:
        db: Initialised DatabaseManager.
        config: Application configuration; ``LOG_LEVEL`` sets the level of
            every logger handed to the services.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    def _logger(name: str) -> StructuredLogger:
        return StructuredLogger(name=name, level=config.log_level)

    logger = _logger("services")
    logger.debug("Wiring services (online=%s, url=%s)", db.is_online, config.SUPABASE_URL)

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    profile_repo = ProfileRepository(db=db, logger=logger)
    task_repo = TaskRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Identity pipeline
    # ------------------------------------------------------------------
    session_tracker = SessionTracker(
        gateway=SupabaseAuthGateway(db=db, logger=_logger("auth")),
        logger=_logger("auth"),
    )
    profile_provisioning_service = ProfileProvisioningService(
        repo=profile_repo,
        logger=logger,
    )
    auth_context = AuthContext(
        tracker=session_tracker,
        provisioner=profile_provisioning_service,
        logger=_logger("auth"),
    )

    # ------------------------------------------------------------------
    # 3. Task services
    # ------------------------------------------------------------------
    task_aggregator_service = TaskAggregatorService(
        task_repo=task_repo,
        profile_repo=profile_repo,
        logger=logger,
    )
    task_service = TaskService(
        task_repo=task_repo,
        profile_repo=profile_repo,
        logger=logger,
    )

    return ServiceContainer(
        session_tracker=session_tracker,
        auth_context=auth_context,
        profile_provisioning_service=profile_provisioning_service,
        task_aggregator_service=task_aggregator_service,
        task_service=task_service,
    )


def create_task_feed(
    services: ServiceContainer,
    task_filter: TaskFilter = TaskFilter.ALL,
) -> TaskFeed:
    """Build a ``TaskFeed`` bound to the container's aggregator."""
    return TaskFeed(
        aggregator=services["task_aggregator_service"],
        logger=get_logger("tasks"),
        task_filter=task_filter,
    )


__all__ = ["ServiceContainer", "create_services", "create_task_feed"]
