"""Temporal activities for GenericWorkflow.

Each activity opens its own database session (``app.database.get_session_ctx``)
and receives already-rendered instruction config from the workflow.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from temporalio import activity
from temporalio.exceptions import ApplicationError

from flowcore.config import DEFAULT_FROM_EMAIL
from flowcore.email_senders import is_allowed_from_email
from flowcore.logging_config import bind_execution_id, get_worker_logger

logger = get_worker_logger().getChild("activities")


@activity.defn
async def create_task_activity(params: Dict[str, Any]) -> Dict[str, Any]:
    """Create the task for an ``assign_task`` instruction.

    Args:
        params: Dict with keys:
            - org_id, workflow_execution_id, contact_id
            - step_id: assign_task instruction id (stored as created_by_step_id)
            - config: rendered instruction config

    Returns:
        {"taskId": <new task id>}
    """
    from app.database import get_session_ctx
    from app.notifications import NotificationService
    from app.repositories.task import TaskRepository

    bind_execution_id(params.get("workflow_execution_id"))
    config = params.get("config") or {}
    assign_to = config.get("assignTo") or {}
    assigned_to = assign_to.get("userId") if assign_to.get("type") == "user" else None
    assigned_role = assign_to.get("role") if assign_to.get("type") == "role" else None

    due_date = None
    if config.get("dueDays") is not None:
        due_date = datetime.now(timezone.utc) + timedelta(days=int(config["dueDays"]))

    description = config.get("description")
    links = config.get("links") or []

    async with get_session_ctx() as session:
        task = await TaskRepository(session).create(
            org_id=params["org_id"],
            title=config.get("title") or "Untitled task",
            workflow_execution_id=params.get("workflow_execution_id"),
            contact_id=params.get("contact_id"),
            created_by_step_id=params.get("step_id"),
            assigned_to=assigned_to,
            assigned_role=assigned_role,
            description=description,
            task_type=config.get("taskType") or "standard",
            priority=config.get("priority") or "medium",
            due_date=due_date,
            metadata={"links": links} if links else None,
        )
        if assigned_to:
            await NotificationService(session).task_assigned(
                params["org_id"], assigned_to, task.id, task.title, assigned_by=None,
            )
        task_id = task.id

    logger.info(
        f"Created task {task_id} "
        f"({config.get('taskType') or 'standard'}) for step {params.get('step_id')}"
    )
    return {"taskId": task_id}


@activity.defn
async def set_execution_state_activity(params: Dict[str, Any]) -> Dict[str, Any]:
    """Patch the execution row: business status, execution state, current step.

    Args:
        params: Dict with keys:
            - org_id, workflow_execution_id
            - status / execution_state / current_step_id (optional)
            - completed: set completed_at when true
            - details: merged into execution metadata
    """
    from app.database import get_session_ctx
    from app.repositories.execution import ExecutionRepository

    execution_id = params["workflow_execution_id"]
    bind_execution_id(execution_id)
    async with get_session_ctx() as session:
        execution = await ExecutionRepository(session).update_state(
            execution_id,
            params["org_id"],
            status=params.get("status"),
            execution_state=params.get("execution_state"),
            current_step_id=params.get("current_step_id"),
            completed=bool(params.get("completed")),
            details=params.get("details"),
        )
        if execution is None:
            raise ApplicationError(f"Execution {execution_id} not found", non_retryable=True)
        result = {"status": execution.status, "execution_state": execution.execution_state}

    logger.info(f"Execution state updated: {result}")
    return result


@activity.defn
async def send_email_activity(params: Dict[str, Any]) -> Dict[str, Any]:
    """Validate the sender against the org allowlist and dispatch.

    Delivery is logged only. A non-allowlisted ``from`` fails without retry.
    """
    from app.database import get_session_ctx
    from app.repositories.organization import OrganizationRepository

    bind_execution_id(params.get("workflow_execution_id"))
    to = (params.get("to") or "").strip()
    if not to:
        raise ApplicationError("send_email has no recipient", non_retryable=True)

    sender = (params.get("from") or "").strip()
    if sender:
        async with get_session_ctx() as session:
            allowed = await OrganizationRepository(session).allowed_from_emails(params["org_id"])
        if not is_allowed_from_email(allowed, sender):
            raise ApplicationError(
                f"Sender {sender} is not in the organization's allowed from addresses",
                non_retryable=True,
            )
    else:
        sender = DEFAULT_FROM_EMAIL

    logger.info(
        f"Email from {sender} to {to} "
        f"subject={params.get('subject') or ''!r}"
    )
    return {"from": sender, "to": to, "delivered": True}


@activity.defn
async def notify_activity(params: Dict[str, Any]) -> Dict[str, Any]:
    """Create in-app notifications for a ``notification`` instruction.

    No matching recipient is a no-op.
    """
    from app.database import get_session_ctx
    from app.notifications import NotificationService

    bind_execution_id(params.get("workflow_execution_id"))
    async with get_session_ctx() as session:
        notified = await NotificationService(session).notify_recipients(
            params["org_id"],
            params.get("recipients") or {},
            title=params.get("title"),
            message=params.get("message"),
            execution_id=params.get("workflow_execution_id"),
        )
    return {"notified": notified}


ALL_ACTIVITIES = [
    create_task_activity,
    set_execution_state_activity,
    send_email_activity,
    notify_activity,
]
