"""
Structured JSON Logging.

Every ``StructuredLogger`` is a child of the ``taskboard`` package logger.
Output handlers (stdout and a rotating log file, both emitting one JSON
object per line) are installed once on the package logger; children only
carry a name and propagate to it.
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

ROOT_LOGGER_NAME: str = "taskboard"

_install_lock = threading.Lock()

# Attributes every LogRecord has; anything else came in through ``extra=``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime"}


def _json_safe(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: ``timestamp`` (UTC, ISO-8601), ``level``, ``logger_name``,
    ``message``, plus ``extra`` for caller-supplied fields and
    ``exception`` when ``exc_info`` was given.  Scalar extras keep their
    JSON type (a profile id stays a number).
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra = {
            key: _json_safe(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False)


def _install_handlers(
    root: logging.Logger,
    level: int,
    stream: Optional[TextIO],
    log_file: str,
    max_bytes: int,
    backup_count: int,
) -> None:
    formatter = JSONFormatter()

    console = logging.StreamHandler(stream or sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    try:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            filename=str(path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    except OSError as exc:
        root.warning(
            "Could not open log file '%s': %s. Logging to console only.", log_file, exc,
        )
    else:
        rotating.setFormatter(formatter)
        root.addHandler(rotating)

    root.setLevel(level)


class StructuredLogger:
    """Injectable logger.

    ``StructuredLogger("auth")`` logs as ``taskboard.auth``.  The first
    instance created in a process installs the package handlers using
    *level*, *stream*, *log_file*, *max_bytes* and *backup_count* (each
    defaulting to ``AppConfig``); later instances reuse them.  Passing
    *level* always sets this logger's own level.

    Usage::

        log = StructuredLogger("tasks")
        log.info("Tasks loaded", extra={"count": 3})
    """

    def __init__(
        self,
        name: str = ROOT_LOGGER_NAME,
        level: Optional[int] = None,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        # Imported here: config logs through the stdlib logger at import time.
        from taskboard.config import get_config

        root = logging.getLogger(ROOT_LOGGER_NAME)
        with _install_lock:
            if not root.handlers:
                cfg = get_config()
                _install_handlers(
                    root,
                    level=level if level is not None else cfg.log_level,
                    stream=stream,
                    log_file=log_file or cfg.LOG_FILE,
                    max_bytes=max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
                    backup_count=backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
                )

        if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
            qualified = name
        else:
            qualified = f"{ROOT_LOGGER_NAME}.{name}"
        self._logger: logging.Logger = logging.getLogger(qualified)
        if level is not None:
            self._logger.setLevel(level)

    @property
    def logger(self) -> logging.Logger:
        """The underlying ``logging.Logger``."""
        return self._logger

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = ROOT_LOGGER_NAME) -> StructuredLogger:
    """Shorthand for ``StructuredLogger(name)``."""
    return StructuredLogger(name=name)
