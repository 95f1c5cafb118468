"""
Just-in-Time Profile Provisioning Service.

Guarantees that every resolved username maps to exactly one profile row,
creating it on first sign-in.

Race handling:
    Two devices signing in for the first time at the same moment will
    both miss on the lookup and both attempt the insert.  The unique
    constraint on ``profiles.username`` lets exactly one insert win; the
    loser receives a :class:`UniqueConstraintViolation`, re-fetches once
    and converges on the winner's row.  The client never assumes it holds
    a lock.

State machine::

    IDLE --SESSION_STARTED--> RESOLVING
    RESOLVING --FOUND--> READY | --NOT_FOUND--> CREATING | --ERROR--> FAILED
    CREATING --CREATED--> READY | --CONFLICT--> RECOVERING
             --SCHEMA_ERROR--> FAILED | --ERROR--> FAILED
    RECOVERING --FOUND--> READY | --NOT_FOUND/ERROR--> FAILED
    READY, FAILED --SESSION_STARTED--> RESOLVING
    (any) --SESSION_ENDED--> IDLE
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from taskboard.errors import (
    DirectoryError,
    InvalidTransitionError,
    NotFoundError,
    SchemaError,
    UniqueConstraintViolation,
)
from taskboard.logger import StructuredLogger
from taskboard.models.enums import ProvisioningEvent, ProvisioningState
from taskboard.models.profile import Profile
from taskboard.models.results import ProvisioningResult
from taskboard.repositories.profile_repository import ProfileRepository
from taskboard.services.base_service import BaseService
from taskboard.utils.audit import log_audit_event

_S = ProvisioningState
_E = ProvisioningEvent

_TRANSITIONS: dict[tuple[ProvisioningState, ProvisioningEvent], ProvisioningState] = {
    (_S.IDLE, _E.SESSION_STARTED): _S.RESOLVING,
    (_S.READY, _E.SESSION_STARTED): _S.RESOLVING,
    (_S.FAILED, _E.SESSION_STARTED): _S.RESOLVING,
    (_S.RESOLVING, _E.FOUND): _S.READY,
    (_S.RESOLVING, _E.NOT_FOUND): _S.CREATING,
    (_S.RESOLVING, _E.ERROR): _S.FAILED,
    (_S.CREATING, _E.CREATED): _S.READY,
    (_S.CREATING, _E.CONFLICT): _S.RECOVERING,
    (_S.CREATING, _E.SCHEMA_ERROR): _S.FAILED,
    (_S.CREATING, _E.ERROR): _S.FAILED,
    (_S.RECOVERING, _E.FOUND): _S.READY,
    (_S.RECOVERING, _E.NOT_FOUND): _S.FAILED,
    (_S.RECOVERING, _E.ERROR): _S.FAILED,
}


class ProvisioningMachine:
    """Table-driven provisioning state machine.

    Holds no I/O; :class:`ProfileProvisioningService` feeds it events.
    ``history`` records every state entered, starting with ``IDLE``.
    """

    def __init__(self) -> None:
        self._state: ProvisioningState = ProvisioningState.IDLE
        self.history: list[ProvisioningState] = [self._state]

    @property
    def state(self) -> ProvisioningState:
        return self._state

    def fire(self, event: ProvisioningEvent) -> ProvisioningState:
        """Apply *event* and return the new state.

        Raises:
            InvalidTransitionError: *event* is not legal in the current state.
        """
        if event == ProvisioningEvent.SESSION_ENDED:
            target = ProvisioningState.IDLE
        else:
            try:
                target = _TRANSITIONS[(self._state, event)]
            except KeyError:
                raise InvalidTransitionError(
                    f"Event {event} is not valid in state {self._state}"
                ) from None
        self._state = target
        self.history.append(target)
        return target


# (event to fire, profile obtained by the step, failure description)
_StepOutcome = tuple[ProvisioningEvent, Optional[Profile], Optional[str]]


class ProfileProvisioningService(BaseService):
    """Resolves a username to its unique profile, creating it when absent."""

    def __init__(
        self,
        repo: ProfileRepository,
        logger: StructuredLogger,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._clock = clock
        self._steps: dict[ProvisioningState, Callable[[str], _StepOutcome]] = {
            ProvisioningState.RESOLVING: self._resolve,
            ProvisioningState.CREATING: self._create,
            ProvisioningState.RECOVERING: self._recover,
        }

    def provision(
        self,
        username: str,
        machine: Optional[ProvisioningMachine] = None,
    ) -> ProvisioningResult:
        """Return the unique profile for *username*.

        Never raises for Directory failures: they end in ``FAILED`` with
        ``profile=None`` and are logged.  ``NotFoundError`` and
        ``UniqueConstraintViolation`` are expected states, not failures.

        Args:
            username: Canonical username from the identity resolver.
            machine: Optional machine to drive (lets callers inspect
                ``history``).  A fresh one is created otherwise.
        """
        machine = machine or ProvisioningMachine()
        machine.fire(ProvisioningEvent.SESSION_STARTED)

        profile: Optional[Profile] = None
        error: Optional[str] = None
        try:
            while machine.state in self._steps:
                event, profile, error = self._steps[machine.state](username)
                machine.fire(event)
        except InvalidTransitionError:
            raise
        except Exception as exc:
            self._logger.error(
                "Profile provisioning: unexpected error for %s: %s",
                username,
                exc,
                exc_info=True,
            )
            machine.fire(ProvisioningEvent.ERROR)
            profile, error = None, f"Unexpected error during provisioning: {exc}"

        if machine.state == ProvisioningState.READY:
            return ProvisioningResult(state=machine.state, profile=profile)
        return ProvisioningResult(state=machine.state, profile=None, error=error)

    # ------------------------------------------------------------------
    # Steps (one per non-terminal state)
    # ------------------------------------------------------------------

    def _resolve(self, username: str) -> _StepOutcome:
        try:
            profile = self._repo.fetch_by_username(username)
        except NotFoundError:
            self._logger.info(
                "Profile provisioning: no profile for %s yet, creating.", username,
            )
            return ProvisioningEvent.NOT_FOUND, None, None
        except DirectoryError as exc:
            self._logger.error(
                "Profile provisioning: error fetching profile %s: %s", username, exc,
            )
            return ProvisioningEvent.ERROR, None, exc.message
        return ProvisioningEvent.FOUND, profile, None

    def _create(self, username: str) -> _StepOutcome:
        try:
            profile = self._repo.insert(username, created_at=self._clock())
        except UniqueConstraintViolation as exc:
            self._logger.warning(
                "Profile provisioning: concurrent insert detected for %s. "
                "Retrying lookup. Error: %s",
                username,
                exc,
            )
            return ProvisioningEvent.CONFLICT, None, None
        except SchemaError as exc:
            self._logger.critical(
                "Profile provisioning: profiles schema mismatch while creating %s "
                "(code=%s). Fix the Directory schema; provisioning will not be "
                "retried. Error: %s",
                username,
                exc.code,
                exc,
            )
            return ProvisioningEvent.SCHEMA_ERROR, None, exc.message
        except DirectoryError as exc:
            self._logger.error(
                "Profile provisioning: error creating profile %s: %s", username, exc,
            )
            return ProvisioningEvent.ERROR, None, exc.message

        log_audit_event(
            logger=self._logger,
            action="PROFILE_CREATE",
            entity_type="Profile",
            entity_id=profile.id,
            actor_id=profile.id,
            details={"username": profile.username},
        )
        return ProvisioningEvent.CREATED, profile, None

    def _recover(self, username: str) -> _StepOutcome:
        try:
            profile = self._repo.fetch_by_username(username)
        except NotFoundError as exc:
            self._logger.error(
                "Profile provisioning: %s lost the insert race but the winning "
                "row is not visible: %s",
                username,
                exc,
            )
            return ProvisioningEvent.NOT_FOUND, None, exc.message
        except DirectoryError as exc:
            self._logger.error(
                "Profile provisioning: re-fetch after conflict failed for %s: %s",
                username,
                exc,
            )
            return ProvisioningEvent.ERROR, None, exc.message

        self._logger.info(
            "Profile provisioning: %s found on retry after concurrent insert.",
            username,
        )
        return ProvisioningEvent.FOUND, profile, None

    # ------------------------------------------------------------------
    # Push token
    # ------------------------------------------------------------------

    def register_push_token(self, profile: Profile, token: Optional[str]) -> Optional[Profile]:
        """Store *token* on *profile*; returns the updated row or ``None`` on failure."""
        try:
            updated = self._repo.update_push_token(profile.id, token)
        except DirectoryError as exc:
            self._logger.warning(
                "Could not register push token for profile %s: %s", profile.id, exc,
            )
            return None
        self._logger.info("Push token registered for profile %s", profile.id)
        return updated
