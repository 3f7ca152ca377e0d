"""Workflow runtime settings: tunable parameters for compilation and execution.

All values read from environment variables with defaults. Import from here
instead of hardcoding.

Infrastructure config (Temporal address, API host, sender address) stays
in flowcore/config.py.
"""

from __future__ import annotations

import os


def _int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _str(key: str, default: str) -> str:
    return os.getenv(key, default)


# =====================================================================
# Authoring compiler
# =====================================================================

# wait_for_task timeout when the originating create_task has no dueDays
DEFAULT_WAIT_TIMEOUT_DAYS = _int("DEFAULT_WAIT_TIMEOUT_DAYS", 7)


# =====================================================================
# Generic workflow (Temporal)
# =====================================================================

# Activity timeouts (seconds)
ACTIVITY_START_TO_CLOSE_SECONDS = _float("ACTIVITY_START_TO_CLOSE_SECONDS", 30.0)
ACTIVITY_MAX_ATTEMPTS = _int("ACTIVITY_MAX_ATTEMPTS", 3)

# Upper bound on interpreted instructions per execution (guards goto loops)
MAX_INTERPRETED_STEPS = _int("MAX_INTERPRETED_STEPS", 1000)


# =====================================================================
# Email senders
# =====================================================================

MAX_ALLOWED_FROM_EMAILS = _int("MAX_ALLOWED_FROM_EMAILS", 25)


# =====================================================================
# Notifications
# =====================================================================

NOTIFICATION_DEFAULT_TITLE = _str("NOTIFICATION_DEFAULT_TITLE", "Notification")
NOTIFICATION_DEFAULT_MESSAGE = _str(
    "NOTIFICATION_DEFAULT_MESSAGE", "You have a new notification."
)
