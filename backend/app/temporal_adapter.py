"""Temporal Client Adapter

Manages Temporal client lifecycle and provides workflow start functions.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from temporalio.client import Client, WorkflowHandle

from flowcore.config import (
    GENERIC_WORKFLOW_NAME,
    TASK_QUEUE as TEMPORAL_TASK_QUEUE,
    TEMPORAL_ADDRESS,
    TEMPORAL_NAMESPACE,
)

logger = logging.getLogger(__name__)

# Singleton client instance (initialized via lifespan)
_client: Optional[Client] = None
_client_lock = asyncio.Lock()


async def init_temporal_client() -> Optional[Client]:
    """Initialize and return Temporal client singleton.

    Returns None if Temporal is not available (graceful degradation).
    """
    global _client
    async with _client_lock:
        if _client is None:
            try:
                _client = await Client.connect(TEMPORAL_ADDRESS, namespace=TEMPORAL_NAMESPACE)
                logger.info(f"Temporal connected: {TEMPORAL_ADDRESS} ({TEMPORAL_NAMESPACE})")
            except Exception as e:
                logger.warning(
                    f"Temporal not connected ({TEMPORAL_ADDRESS}): {e}. "
                    "Workflow triggers will return 503; other endpoints keep working"
                )
                _client = None
    return _client


async def close_temporal_client() -> None:
    """Close Temporal client connection."""
    global _client
    if _client is not None:
        # Newer Temporal SDK versions don't require explicit close
        _client = None


async def get_client() -> Client:
    """Get Temporal client, initializing if needed.

    Raises RuntimeError if Temporal is not connected.
    """
    global _client
    if _client is None:
        await init_temporal_client()
    if _client is None:
        raise RuntimeError("Temporal is not connected; start the Temporal service first")
    return _client


def generic_workflow_id(execution_id: str) -> str:
    return f"generic-workflow-{execution_id}"


async def start_generic_workflow(execution_id: str, params: Dict[str, Any]) -> WorkflowHandle[Any, Any]:
    """Start a GenericWorkflow for one execution row.

    Args:
        execution_id: WorkflowExecutionModel id; the Temporal id derives from it
        params: GenericWorkflow input (compiled steps, contact, statuses, ...)

    Returns:
        Workflow handle (``id`` and ``first_execution_run_id`` are persisted)
    """
    client = await get_client()
    handle = await client.start_workflow(
        GENERIC_WORKFLOW_NAME,
        params,
        id=generic_workflow_id(execution_id),
        task_queue=TEMPORAL_TASK_QUEUE,
    )
    logger.info(f"Started {GENERIC_WORKFLOW_NAME} {handle.id} for execution {execution_id}")
    return handle
