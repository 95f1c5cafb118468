"""
Session Tracking.

Provides an injectable ``SessionTracker`` that mirrors the external
authentication session into application state for the lifetime of the
owning context.

Usage::

    from taskboard.auth import SessionTracker, UNKNOWN

    tracker = SessionTracker(gateway=gateway, logger=get_logger("auth"))
    remove = tracker.add_listener(lambda session: print(session))
    with tracker:
        session = tracker.current_session()
    remove()
"""

from __future__ import annotations

import threading
from types import TracebackType
from typing import Any, Callable, Optional, Protocol, Union

from taskboard.errors import DirectoryError
from taskboard.logger import StructuredLogger
from taskboard.models.session import AuthSession


class _UnknownSession:
    """Sentinel for "initial session fetch still in flight"."""

    _instance: Optional["_UnknownSession"] = None

    def __new__(cls) -> "_UnknownSession":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN = _UnknownSession()

TrackedSession = Union[AuthSession, None, _UnknownSession]
SessionListener = Callable[[Optional[AuthSession]], None]


class SessionGateway(Protocol):
    def get_current_session(self) -> Optional[AuthSession]: ...

    def subscribe_session_changes(
        self, handler: Callable[[str, Optional[AuthSession]], None]
    ) -> Any: ...

    def unsubscribe(self, handle: Any) -> None: ...


class SessionTracker:
    """Holds the latest known session and bridges change notifications.

    ``start()`` subscribes to the gateway and performs one session fetch;
    ``stop()`` releases the subscription exactly once.  Both are
    idempotent, and the tracker can be started again after a stop.
    Listeners are called outside the internal lock with the new session
    (or ``None``) after every applied change.
    """

    def __init__(self, gateway: SessionGateway, logger: StructuredLogger) -> None:
        self._gateway = gateway
        self._logger = logger
        self._lock: threading.RLock = threading.RLock()
        self._session: TrackedSession = UNKNOWN
        self._is_loading: bool = True
        self._active: bool = False
        self._subscription: Any = None
        self._change_count: int = 0
        self._listeners: dict[int, SessionListener] = {}
        self._next_listener_id: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Subscribe to session changes and fetch the current session."""
        with self._lock:
            if self._active:
                return
            self._active = True
            self._is_loading = True
            changes_before = self._change_count

        try:
            handle = self._gateway.subscribe_session_changes(self._on_auth_event)
        except DirectoryError as exc:
            self._logger.error("Could not subscribe to session changes: %s", exc)
            handle = None

        with self._lock:
            if not self._active:
                # stop() ran while subscribing
                if handle is not None:
                    self._release(handle)
                return
            self._subscription = handle

        session: Optional[AuthSession]
        try:
            session = self._gateway.get_current_session()
        except DirectoryError as exc:
            self._logger.error("Error fetching session: %s", exc)
            session = None

        with self._lock:
            # A change notification that arrived during the fetch is newer.
            apply = self._active and self._change_count == changes_before
            if apply:
                self._apply(session)
            self._is_loading = False

        if apply:
            self._notify(session)

    def stop(self) -> None:
        """Release the subscription.  Safe to call repeatedly."""
        with self._lock:
            handle = self._subscription
            self._subscription = None
            self._active = False
        if handle is not None:
            self._release(handle)

    def __enter__(self) -> "SessionTracker":
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

    def current_session(self) -> TrackedSession:
        """Latest session, ``None`` when signed out, ``UNKNOWN`` before the first fetch."""
        with self._lock:
            return self._session

    @property
    def is_loading(self) -> bool:
        with self._lock:
            return self._is_loading

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._active

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
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
    # Private helpers
    # ------------------------------------------------------------------

    def _on_auth_event(self, event: str, session: Optional[AuthSession]) -> None:
        with self._lock:
            if not self._active:
                return
            self._apply(session)
        self._logger.info(
            "Auth state changed: %s",
            event,
            extra={"event": event, "signed_in": session is not None},
        )
        self._notify(session)

    def _apply(self, session: Optional[AuthSession]) -> None:
        self._session = session
        self._change_count += 1

    def _notify(self, session: Optional[AuthSession]) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(session)
            except Exception as exc:
                self._logger.error(
                    "Session listener failed: %s", exc, exc_info=True,
                )

    def _release(self, handle: Any) -> None:
        try:
            self._gateway.unsubscribe(handle)
            self._logger.debug("Session subscription released.")
        except Exception as exc:
            self._logger.warning("Failed to release session subscription: %s", exc)
