"""
Directory Service Connection Layer.

Owns the single Supabase client used by every repository and by the auth
gateway.  Supabase plays the role of the Directory Service: it stores
``profiles`` and ``tasks``, enforces the unique constraint on
``profiles.username`` and issues / refreshes authentication sessions.

This module only manages the *connection*; it contains no query logic.
Data access is performed through the Repository pattern.

Usage (dependency injection at app startup)::

    from taskboard.database import DatabaseManager
    from taskboard.logger import StructuredLogger

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        logger=StructuredLogger(name="database"),
    )
"""

from __future__ import annotations

from typing import Optional

from supabase import Client as SupabaseClient
from supabase import create_client

from taskboard.logger import StructuredLogger


class DatabaseManager:
    """Manages the connection to the Supabase Directory Service.

    When ``supabase_url`` or ``supabase_key`` is empty the client is
    **not** created.  The ``supabase`` property then raises
    ``RuntimeError``, which the repository layer classifies as a
    :class:`~taskboard.errors.TransportError`.

    Parameters
    ----------
    supabase_url:
        The Supabase project URL (e.g. ``https://xyz.supabase.co``).
    supabase_key:
        The Supabase anonymous key.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    client:
        Pre-built client, used instead of ``create_client`` when given.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        logger: StructuredLogger,
        client: Optional[SupabaseClient] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._supabase: Optional[SupabaseClient] = client

        if self._supabase is not None:
            self._logger.debug("Using injected Supabase client.")
        elif supabase_url and supabase_key:
            try:
                self._supabase = create_client(supabase_url, supabase_key)
                self._logger.info("Supabase client initialized.")
            except (ValueError, TypeError) as exc:
                self._logger.warning(
                    "Supabase credential format error: %s. Directory Service unavailable.",
                    exc,
                )
            except Exception as exc:
                self._logger.error(
                    "Unexpected Supabase initialization failure: %s. "
                    "Directory Service unavailable.",
                    exc,
                    exc_info=True,
                )
        else:
            self._logger.warning(
                "Supabase credentials not configured; Directory Service unavailable."
            )

    @property
    def supabase(self) -> SupabaseClient:
        """Return the initialised Supabase client.

        Raises
        ------
        RuntimeError
            If the client was not initialised.
        """
        if self._supabase is None:
            raise RuntimeError(
                "Supabase client is not initialised. "
                "Check SUPABASE_URL and SUPABASE_ANON_KEY."
            )
        return self._supabase

    @property
    def is_online(self) -> bool:
        """``True`` when the Supabase client is available."""
        return self._supabase is not None

    def close(self) -> None:
        """Release the client.  The persisted auth session is left intact.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        if self._supabase is None:
            return
        self._supabase = None
        self._logger.info("Supabase client released.")
