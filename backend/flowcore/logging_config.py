"""Logging for the workflow backend: file + console handlers per component.

Every record carries an ``execution_id`` attribute so worker and audit lines
can be grepped per workflow execution. Activities bind it with
``bind_execution_id``; records outside any execution show ``-``.
"""
from __future__ import annotations

import logging
import os
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

# Log directory: configurable via LOG_DIR env var for Docker
LOG_DIR = Path(os.getenv("LOG_DIR", str(Path(__file__).parent.parent / "logs")))
LOG_DIR.mkdir(exist_ok=True)

FILE_FORMAT = "%(asctime)s [%(name)s] [%(levelname)s] [exec=%(execution_id)s] %(message)s"
CONSOLE_FORMAT = "%(asctime)s [%(name)s] [exec=%(execution_id)s] %(message)s"

_execution_id: ContextVar[Optional[str]] = ContextVar("execution_id", default=None)

_configured_loggers: set[str] = set()


def bind_execution_id(execution_id: Optional[str]) -> None:
    """Tag log records from the current task with ``execution_id``.

    Temporal runs each activity in its own asyncio task, so the binding ends
    with the activity.
    """
    _execution_id.set(execution_id or None)


def current_execution_id() -> Optional[str]:
    return _execution_id.get()


class ExecutionContextFilter(logging.Filter):
    """Stamp ``record.execution_id`` from the bound context (``-`` when unbound)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "execution_id", None):
            record.execution_id = _execution_id.get() or "-"
        return True


def setup_logger(name: str, filename: str) -> logging.Logger:
    """Attach a file handler (``LOG_DIR/filename``) and a console handler to ``name``.

    Child loggers (``worker.activities``) share the parent's handlers.
    Calling twice for the same name returns the configured logger.
    """
    logger = logging.getLogger(name)
    if name in _configured_loggers:
        return logger

    logger.setLevel(logging.INFO)
    logger.propagate = False

    context_filter = ExecutionContextFilter()

    fh = logging.FileHandler(LOG_DIR / filename, encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(logging.Formatter(FILE_FORMAT))
    fh.addFilter(context_filter)

    sh = logging.StreamHandler()
    sh.setLevel(logging.INFO)
    sh.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    sh.addFilter(context_filter)

    logger.addHandler(fh)
    logger.addHandler(sh)

    _configured_loggers.add(name)
    return logger


def get_api_logger() -> logging.Logger:
    """HTTP service lifecycle and request handling."""
    return setup_logger("api", "api.log")


def get_worker_logger() -> logging.Logger:
    """Temporal worker; activities log through ``worker.activities``."""
    return setup_logger("worker", "worker.log")


def get_audit_logger() -> logging.Logger:
    """Mirror of task/execution activity-log rows."""
    return setup_logger("audit", "audit.log")
