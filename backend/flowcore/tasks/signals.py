"""Signals sent from the task API into a running ``GenericWorkflow``."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

TASK_COMPLETED_SIGNAL = "taskCompleted"
APPROVAL_SUBMITTED_SIGNAL = "approvalSubmitted"


def task_completed_payload(task_id: str, completed_by: str) -> Dict[str, Any]:
    return {"taskId": task_id, "completedBy": completed_by}


def approval_submitted_payload(outcome: str, comment: Optional[str], approved_by: str) -> Dict[str, Any]:
    return {"outcome": outcome, "comment": comment, "approvedBy": approved_by}


class SignalDispatcher:
    """Single-shot signal delivery. Failures are logged and reported as False.

    Args:
        client_provider: returns a connected temporalio ``Client``
            (``app.temporal_adapter.get_client``); may raise when disconnected.
    """

    def __init__(self, client_provider: Callable[[], Awaitable[Any]]):
        self._client_provider = client_provider

    async def dispatch(self, workflow_id: str, signal: str, payload: Dict[str, Any]) -> bool:
        try:
            client = await self._client_provider()
            handle = client.get_workflow_handle(workflow_id)
            await handle.signal(signal, payload)
        except Exception as exc:
            logger.warning(f"Signal {signal} to {workflow_id} failed: {exc}")
            return False
        logger.info(f"Signaled workflow {workflow_id} with {signal}")
        return True
