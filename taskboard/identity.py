"""
Identity Resolution.

Maps an authentication session onto the canonical username that keys the
caller's profile.  Existing profiles were created under this mapping, so
the resolution order below is a compatibility contract and must not
change:

1. ``user_metadata.username``, verbatim;
2. the e-mail local part (before ``@``), verbatim, when non-empty;
3. ``user_metadata.full_name`` then ``user_metadata.name``, lower-cased
   with every whitespace run replaced by ``_``;
4. ``user_`` followed by the first 8 characters of the user id.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from taskboard.models.session import AuthSession

__all__ = ["FALLBACK_PREFIX", "NAME_SEPARATOR", "resolve_username"]

FALLBACK_PREFIX: str = "user_"
NAME_SEPARATOR: str = "_"
_FALLBACK_ID_LENGTH: int = 8

_RE_WHITESPACE_RUN = re.compile(r"\s+")


def _metadata_str(metadata: dict[str, Any], key: str) -> Optional[str]:
    value = metadata.get(key)
    return value if isinstance(value, str) and value else None


def _slugify_name(name: str) -> str:
    return _RE_WHITESPACE_RUN.sub(NAME_SEPARATOR, name.lower())


def resolve_username(session: AuthSession) -> str:
    """Return the canonical username for *session*.

    Pure: no I/O, and the same session always yields the same string.
    Never returns an empty string (``SessionUser.id`` is non-empty).
    """
    user = session.user
    metadata = user.metadata

    username = _metadata_str(metadata, "username")
    if username:
        return username

    if user.email:
        local_part = user.email.split("@")[0]
        if local_part:
            return local_part

    for key in ("full_name", "name"):
        display_name = _metadata_str(metadata, key)
        if display_name:
            return _slugify_name(display_name)

    return f"{FALLBACK_PREFIX}{user.id[:_FALLBACK_ID_LENGTH]}"
