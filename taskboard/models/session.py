"""
Authentication Session Models.

Read-only snapshot of the session issued by Supabase Auth.  Only the
attributes consumed by identity resolution are modelled; the rest of the
provider payload is ignored.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class SessionUser(BaseModel):
    """The authenticated user carried by a session.

    ``metadata`` mirrors Supabase's ``user_metadata``; the keys read by
    :func:`taskboard.identity.resolve_username` are ``username``,
    ``full_name`` and ``name``.
    """

    id: str = Field(min_length=1)
    email: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class AuthSession(BaseModel):
    """Opaque external-identity token bundle."""

    access_token: str = ""
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    user: SessionUser

    model_config = {"frozen": True}

    @classmethod
    def from_supabase(cls, session: Any) -> "AuthSession":
        """Build a snapshot from a ``supabase_auth`` ``Session`` object."""
        user = session.user
        return cls(
            access_token=session.access_token or "",
            refresh_token=session.refresh_token,
            expires_at=session.expires_at,
            user=SessionUser(
                id=user.id,
                email=user.email,
                metadata=dict(user.user_metadata or {}),
            ),
        )
