"""
Utility Package.

Re-exports the audit and due-date helpers.
"""

from __future__ import annotations

from taskboard.utils.audit import AuditEvent, log_audit_event
from taskboard.utils.dates import (
    DATE_FORMAT_HINT,
    format_due_date,
    parse_due_date,
    today_text,
)

__all__ = [
    "AuditEvent",
    "log_audit_event",
    "DATE_FORMAT_HINT",
    "format_due_date",
    "parse_due_date",
    "today_text",
]
