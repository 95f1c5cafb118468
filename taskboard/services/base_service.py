"""
Service base class.

Services receive their ``StructuredLogger`` through the constructor and
keep it as ``self._logger``.  Repositories, the session tracker and other
collaborators are added by each subclass ``__init__``.
"""

from __future__ import annotations

from taskboard.logger import StructuredLogger


class BaseService:
    """Holds the injected logger shared by every service.

    Attributes
    ----------
    _logger:
        Structured JSON logger named after the owning subsystem
        (``taskboard.services``, ``taskboard.auth``).  ``create_services``
        sets its level from ``AppConfig.LOG_LEVEL``.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger

    @property
    def logger(self) -> StructuredLogger:
        return self._logger
