"""
Authentication Context.

Process-wide identity state for the client: the current session, whether
identity is still loading, and the provisioned profile.  Ties the
``SessionTracker`` to identity resolution and profile provisioning:

    session change -> resolve_username -> ProfileProvisioningService

Stale-result suppression:
    Every session change bumps a generation counter.  A provisioning run
    remembers the generation it started under and its result is dropped
    if the generation moved on (sign-out, another sign-in, ``stop()``)
    before it completed.
"""

from __future__ import annotations

import threading
from types import TracebackType
from typing import Callable, Optional

from taskboard.auth import UNKNOWN, SessionTracker, TrackedSession
from taskboard.identity import resolve_username
from taskboard.logger import StructuredLogger
from taskboard.models.enums import ProvisioningState
from taskboard.models.profile import Profile
from taskboard.models.session import AuthSession
from taskboard.services.base_service import BaseService
from taskboard.services.profile_provisioning import ProfileProvisioningService

AuthContextListener = Callable[["AuthContext"], None]


class AuthContext(BaseService):
    """Injectable holder for session, loading flag and profile.

    Create one per process and pass it to every consumer.  ``start()``
    installs the session subscription, ``stop()`` removes it; both are
    idempotent and the context can be used as a ``with`` block.
    """

    def __init__(
        self,
        tracker: SessionTracker,
        provisioner: ProfileProvisioningService,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._tracker = tracker
        self._provisioner = provisioner
        self._lock: threading.RLock = threading.RLock()
        self._profile: Optional[Profile] = None
        self._state: ProvisioningState = ProvisioningState.IDLE
        self._is_provisioning: bool = False
        self._generation: int = 0
        self._remove_tracker_listener: Optional[Callable[[], None]] = None
        self._listeners: dict[int, AuthContextListener] = {}
        self._next_listener_id: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._remove_tracker_listener is not None:
                return
            self._remove_tracker_listener = self._tracker.add_listener(
                self._on_session_changed
            )
        self._tracker.start()
        # Loading can end without a session change when a notification
        # overtook the initial fetch.
        self._notify()

    def stop(self) -> None:
        with self._lock:
            remove = self._remove_tracker_listener
            self._remove_tracker_listener = None
            self._generation += 1
            self._profile = None
            self._state = ProvisioningState.IDLE
            self._is_provisioning = False
        if remove is None:
            return
        remove()
        self._tracker.stop()
        self._logger.info("Auth context stopped.")

    def __enter__(self) -> "AuthContext":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Public state
    # ------------------------------------------------------------------

    @property
    def session(self) -> TrackedSession:
        return self._tracker.current_session()

    @property
    def profile(self) -> Optional[Profile]:
        with self._lock:
            return self._profile

    @property
    def provisioning_state(self) -> ProvisioningState:
        with self._lock:
            return self._state

    @property
    def is_loading(self) -> bool:
        """``True`` while the session is unknown or a profile is being provisioned."""
        with self._lock:
            return self._tracker.is_loading or self._is_provisioning

    @property
    def is_logged_in(self) -> bool:
        session = self._tracker.current_session()
        return session is not None and session is not UNKNOWN

    def register_push_token(self, token: Optional[str]) -> bool:
        """Store the device push token on the current profile."""
        profile = self.profile
        if profile is None:
            return False
        updated = self._provisioner.register_push_token(profile, token)
        if updated is None:
            return False
        with self._lock:
            if self._profile is not None and self._profile.id == updated.id:
                self._profile = updated
        return True

    def add_listener(self, listener: AuthContextListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it."""
        with self._lock:
            listener_id = self._next_listener_id
            self._next_listener_id += 1
            self._listeners[listener_id] = listener

        def _remove() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)

        return _remove

    # ------------------------------------------------------------------
    # Session pipeline
    # ------------------------------------------------------------------

    def _on_session_changed(self, session: Optional[AuthSession]) -> None:
        with self._lock:
            self._generation += 1
            generation = self._generation
            if session is None:
                self._profile = None
                self._state = ProvisioningState.IDLE
                self._is_provisioning = False
            else:
                self._state = ProvisioningState.RESOLVING
                self._is_provisioning = True
        self._notify()

        if session is None:
            return

        username = resolve_username(session)
        result = self._provisioner.provision(username)

        with self._lock:
            if generation != self._generation:
                self._logger.debug(
                    "Discarding stale provisioning result for %s (generation %d, current %d).",
                    username,
                    generation,
                    self._generation,
                )
                return
            self._profile = result.profile
            self._state = result.state
            self._is_provisioning = False

        if result.is_ready and result.profile is not None:
            self._logger.info(
                "Profile ready: %s (id=%s)",
                result.profile.username,
                result.profile.id,
                extra={"event": "PROFILE_READY", "profile_id": result.profile.id},
            )
        else:
            self._logger.warning(
                "Signed in as %s without a profile: %s", username, result.error,
            )
        self._notify()

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(self)
            except Exception as exc:
                self._logger.error(
                    "Auth context listener failed: %s", exc, exc_info=True,
                )
