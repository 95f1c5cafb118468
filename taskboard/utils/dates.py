"""
Due-date helpers for the task form.

The form accepts and displays dates as ``MM/DD/YYYY``; the Directory
stores them as ISO-8601 timestamps.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

__all__ = ["DATE_FORMAT_HINT", "format_due_date", "parse_due_date", "today_text"]

DATE_FORMAT_HINT: str = "MM/DD/YYYY"
_NO_DUE_DATE: str = "No due date"


def parse_due_date(text: str) -> Optional[datetime]:
    """Parse ``MM/DD/YYYY`` into a UTC-midnight datetime.

    Returns ``None`` for anything that is not a real calendar date with a
    four-digit year (e.g. ``02/30/2024`` or ``13/01/2024``).
    """
    parts = text.strip().split("/")
    if len(parts) != 3:
        return None

    try:
        month, day, year = (int(part) for part in parts)
    except ValueError:
        return None

    if not 1000 <= year <= 9999:
        return None

    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def format_due_date(value: Optional[datetime]) -> str:
    if value is None:
        return _NO_DUE_DATE
    return value.strftime("%m/%d/%Y")


def today_text(now: Optional[datetime] = None) -> str:
    """Default value for the due-date field."""
    return (now or datetime.now()).strftime("%m/%d/%Y")
