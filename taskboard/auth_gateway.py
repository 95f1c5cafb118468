"""
Supabase Auth Gateway.

The slice of the Directory Service contract that deals with sessions:
fetching the current session and subscribing to session changes.
Supabase ``Session`` objects are converted into read-only
:class:`~taskboard.models.session.AuthSession` snapshots at this boundary.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from taskboard.database import DatabaseManager
from taskboard.errors import classify_api_error
from taskboard.logger import StructuredLogger
from taskboard.models.session import AuthSession

# (event name, new session or None)
SessionChangeHandler = Callable[[str, Optional[AuthSession]], None]


class SupabaseAuthGateway:
    """Session operations backed by ``supabase.auth``."""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    def get_current_session(self) -> Optional[AuthSession]:
        """Return the persisted session, or ``None`` when signed out.

        Raises:
            TransportError: The client is offline or the service is unreachable.
            ServiceError: Any other auth failure.
        """
        try:
            session = self._db.supabase.auth.get_session()
        except Exception as exc:
            raise classify_api_error(exc, "get_current_session (auth)") from exc
        return AuthSession.from_supabase(session) if session else None

    def subscribe_session_changes(self, handler: SessionChangeHandler) -> Any:
        """Register *handler* for auth state changes.

        Returns the subscription handle to pass to :meth:`unsubscribe`.
        """
        def _callback(event: Any, session: Any) -> None:
            snapshot = AuthSession.from_supabase(session) if session else None
            handler(str(event), snapshot)

        try:
            return self._db.supabase.auth.on_auth_state_change(_callback)
        except Exception as exc:
            raise classify_api_error(exc, "subscribe_session_changes (auth)") from exc

    def unsubscribe(self, handle: Any) -> None:
        handle.unsubscribe()
