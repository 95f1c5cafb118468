"""
Directory Service Error Taxonomy.

Every failure raised by the repository layer is one of the exceptions
below.  Raw client exceptions (``postgrest.exceptions.APIError``,
``httpx`` transport errors, the offline ``RuntimeError`` from
``DatabaseManager.supabase``) are translated exactly once, in
:func:`classify_api_error`, so services only ever branch on this
taxonomy and never on PostgREST / Postgres error codes.

Hierarchy::

    DirectoryError
    ├── ServiceError
    │   └── TransportError
    ├── NotFoundError
    ├── UniqueConstraintViolation
    └── SchemaError
"""

from __future__ import annotations

from typing import Optional

import httpx
from postgrest.exceptions import APIError

__all__ = [
    "DirectoryError",
    "ServiceError",
    "TransportError",
    "NotFoundError",
    "UniqueConstraintViolation",
    "SchemaError",
    "InvalidTransitionError",
    "DIRECTORY_ERROR_MAP",
    "classify_api_error",
]


class DirectoryError(Exception):
    """Base class for every failure reported by the Directory Service."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.message: str = message
        self.code: Optional[str] = code
        self.original_error: Optional[BaseException] = original_error
        super().__init__(self.message)


class ServiceError(DirectoryError):
    """Any Directory Service failure without a more specific class."""


class TransportError(ServiceError):
    """The Directory Service could not be reached (network, offline client)."""


class NotFoundError(DirectoryError):
    """A single-row query matched no rows."""


class UniqueConstraintViolation(DirectoryError):
    """An insert lost a race against a concurrent insert of the same key."""


class SchemaError(DirectoryError):
    """The remote schema does not match what the client writes or reads.

    Configuration-level: retrying cannot fix it.
    """


class InvalidTransitionError(RuntimeError):
    """A state machine received an event that is illegal in its current state."""


# ---------------------------------------------------------------------------
# PostgREST / Postgres error-code mapping
# ---------------------------------------------------------------------------

DIRECTORY_ERROR_MAP: dict[str, type[DirectoryError]] = {
    "PGRST116": NotFoundError,  # .single() matched zero (or many) rows
    "23505": UniqueConstraintViolation,  # unique_violation
    "22P02": SchemaError,  # invalid_text_representation
    "42703": SchemaError,  # undefined_column
    "42P01": SchemaError,  # undefined_table
    "PGRST204": SchemaError,  # column not found in schema cache
}


def classify_api_error(exc: BaseException, operation: str) -> DirectoryError:
    """Translate a raw client exception into the Directory taxonomy.

    Args:
        exc: The exception raised by the Supabase / PostgREST client.
        operation: Human-readable label used in the resulting message,
            e.g. ``"fetch_by_username (profiles)"``.

    Returns:
        A :class:`DirectoryError` subclass instance wrapping *exc*.
        Already-classified errors are returned unchanged.
    """
    if isinstance(exc, DirectoryError):
        return exc

    if isinstance(exc, APIError):
        code: Optional[str] = exc.code
        error_cls = DIRECTORY_ERROR_MAP.get(code or "", ServiceError)
        return error_cls(
            f"{operation} failed: {exc.message}",
            code=code,
            original_error=exc,
        )

    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return TransportError(
            f"{operation} failed: Directory Service unreachable ({exc})",
            original_error=exc,
        )

    if isinstance(exc, RuntimeError):
        # DatabaseManager.supabase raises RuntimeError when offline.
        return TransportError(f"{operation} failed: {exc}", original_error=exc)

    return ServiceError(f"{operation} failed: {exc}", original_error=exc)
