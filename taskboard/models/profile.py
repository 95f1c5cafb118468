"""
Profile Models.

``Profile`` is the application identity created lazily on first sign-in.
``ProfileSummary`` is the shallow projection joined onto task rows.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class Profile(BaseModel):
    """Represents an application profile.

    ``id`` is assigned by the Directory Service and never changes.
    ``username`` is unique across all profiles (database constraint).
    """

    id: int
    username: str
    expo_push_token: Optional[str] = None
    created_at: Optional[datetime] = None
    name: Optional[str] = None
    email: Optional[str] = None

    model_config = {"from_attributes": True}

    def to_summary(self) -> "ProfileSummary":
        return ProfileSummary(
            id=self.id, username=self.username, name=self.name, email=self.email,
        )


class ProfileSummary(BaseModel):
    """Display projection of a profile (``id, username, name, email``)."""

    id: int
    username: str
    name: Optional[str] = None
    email: Optional[str] = None

    model_config = {"frozen": True, "from_attributes": True}
