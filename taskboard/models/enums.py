"""
Shared Enumerations for Taskboard Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents.
"""

from __future__ import annotations
from enum import StrEnum


class TaskFilter(StrEnum):
    """Task list filters offered to the user.

    Values match the filter keys persisted by existing clients.
    """

    ALL = "all"
    ASSIGNED_TO_ME = "assigned"
    CREATED_BY_ME = "created"


class TaskListStatus(StrEnum):
    """Display state of a task list."""

    LOADING = "LOADING"
    ERROR = "ERROR"
    READY = "READY"


class ProvisioningState(StrEnum):
    """States of the profile provisioning machine.

    ``RECOVERING`` is the single re-fetch issued after an insert lost a
    uniqueness race.  ``READY`` and ``FAILED`` are re-entered on every new
    session, they are not terminal for the lifetime of the client.
    """

    IDLE = "IDLE"
    RESOLVING = "RESOLVING"
    CREATING = "CREATING"
    RECOVERING = "RECOVERING"
    READY = "READY"
    FAILED = "FAILED"


class ProvisioningEvent(StrEnum):
    """Inputs that drive :class:`ProvisioningState` transitions."""

    SESSION_STARTED = "SESSION_STARTED"
    SESSION_ENDED = "SESSION_ENDED"
    FOUND = "FOUND"
    NOT_FOUND = "NOT_FOUND"
    CREATED = "CREATED"
    CONFLICT = "CONFLICT"
    SCHEMA_ERROR = "SCHEMA_ERROR"
    ERROR = "ERROR"


class TaskErrorCode(StrEnum):
    """Error categories for task form operations."""

    NOT_AUTHENTICATED = "not_authenticated"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    NETWORK_ERROR = "network_error"
    UNKNOWN_ERROR = "unknown_error"
