"""
Base Repository.

Provides shared infrastructure for all repositories:
- DatabaseManager reference (Supabase client)
- Logger reference
- Uniform translation of client exceptions into the Directory taxonomy
"""

from __future__ import annotations

from typing import Callable, TypeVar

from supabase import Client as SupabaseClient

from taskboard.database import DatabaseManager
from taskboard.errors import DirectoryError, classify_api_error
from taskboard.logger import StructuredLogger

T = TypeVar("T")


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> SupabaseClient:
        """Returns the Supabase client for Directory operations."""
        return self._db.supabase

    def _execute(self, op: Callable[[], T], *, operation_name: str) -> T:
        """Run *op* and translate any failure into a :class:`DirectoryError`.

        Every Directory call in the repository layer goes through here, so
        services only ever see the exceptions defined in
        :mod:`taskboard.errors`.  Nothing is retried.

        Parameters
        ----------
        op:
            Zero-argument callable that performs the Supabase query.
        operation_name:
            Human-readable label for log messages and error text, e.g.
            ``"fetch_by_username (profiles)"``.
        """
        try:
            return op()
        except DirectoryError:
            raise
        except Exception as exc:
            error = classify_api_error(exc, operation_name)
            self._logger.debug(
                "Directory call %s failed with %s (code=%s)",
                operation_name,
                type(error).__name__,
                error.code,
            )
            raise error from exc
