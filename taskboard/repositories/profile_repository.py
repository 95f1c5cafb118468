"""
Profile Repository.

Handles all profile data access against the Directory Service.
The ``profiles`` table carries a unique constraint on ``username``; that
constraint is the only serialisation point for concurrent first-logins.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from taskboard.database import DatabaseManager
from taskboard.errors import NotFoundError, ServiceError
from taskboard.logger import StructuredLogger
from taskboard.models.profile import Profile, ProfileSummary
from taskboard.repositories.base_repository import BaseRepository


class ProfileRepository(BaseRepository):
    """Data access layer for Profile entities.

    Profiles are never deleted by the client.
    """

    TABLE = "profiles"
    SUMMARY_COLUMNS = "id, username, name, email"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def fetch_by_username(self, username: str) -> Profile:
        """Fetch the profile for *username*.

        Raises:
            NotFoundError: No profile has this username.
            ServiceError: Any other Directory failure.
        """
        operation = "fetch_by_username (profiles)"

        def _op() -> Profile:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("username", username)
                .single()
                .execute()
            )
            if not response.data:
                raise NotFoundError(f"{operation}: no profile for {username!r}")
            return Profile(**response.data)

        return self._execute(_op, operation_name=operation)

    def insert(self, username: str, created_at: datetime) -> Profile:
        """Insert a new profile.  The id is generated by the database.

        Raises:
            UniqueConstraintViolation: A profile with *username* already exists.
            SchemaError: The ``profiles`` schema rejects the row.
            ServiceError: Any other Directory failure.
        """
        operation = "insert (profiles)"
        data = {
            "username": username,
            "expo_push_token": None,
            "created_at": created_at.isoformat(),
        }

        def _op() -> Profile:
            response = self.supabase.table(self.TABLE).insert(data).execute()
            if not response.data:
                raise ServiceError(f"{operation}: insert returned no row")
            return Profile(**response.data[0])

        profile = self._execute(_op, operation_name=operation)
        self._logger.info("Profile inserted: %s (id=%s)", profile.username, profile.id)
        return profile

    def fetch_summaries_by_ids(self, ids: Iterable[int]) -> list[ProfileSummary]:
        """Batched lookup of display projections for *ids*.

        Ids without a matching row are simply absent from the result.
        """
        id_list: list[int] = sorted(set(ids))

        def _op() -> list[ProfileSummary]:
            response = (
                self.supabase.table(self.TABLE)
                .select(self.SUMMARY_COLUMNS)
                .in_("id", id_list)
                .execute()
            )
            return [ProfileSummary(**row) for row in response.data or []]

        return self._execute(_op, operation_name="fetch_summaries_by_ids (profiles)")

    def list_all(self) -> list[Profile]:
        """All profiles ordered by username, ascending."""
        def _op() -> list[Profile]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .order("username")
                .execute()
            )
            return [Profile(**row) for row in response.data or []]

        return self._execute(_op, operation_name="list_all (profiles)")

    def update_push_token(self, profile_id: int, token: Optional[str]) -> Profile:
        """Store (or clear) the Expo push token of a profile."""
        operation = "update_push_token (profiles)"

        def _op() -> Profile:
            response = (
                self.supabase.table(self.TABLE)
                .update({"expo_push_token": token})
                .eq("id", profile_id)
                .execute()
            )
            if not response.data:
                raise NotFoundError(f"{operation}: no profile with id {profile_id}")
            return Profile(**response.data[0])

        return self._execute(_op, operation_name=operation)
