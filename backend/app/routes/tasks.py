"""Task API endpoints.

Every transition goes through ``flowcore.tasks.lifecycle.TaskLifecycle``;
the route only resolves the actor, checks the coarse permission and maps
domain errors to HTTP responses.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app import temporal_adapter
from app.audit import ActivityAuditLog
from app.auth import get_actor, require_permission
from app.database import get_session
from app.models.schemas import (
    TaskDecisionRequest,
    TaskResponse,
    TaskStatusRequest,
    TaskTransitionResponse,
)
from app.notifications import NotificationService
from app.repositories.execution import ExecutionRepository
from app.repositories.task import TaskRepository
from flowcore.access.roles import AccessContext
from flowcore.errors import WorkflowCoreError
from flowcore.tasks.lifecycle import TaskLifecycle, TaskTransitionResult
from flowcore.tasks.signals import SignalDispatcher

from .common import http_error

logger = logging.getLogger("app.routes.tasks")

router = APIRouter(prefix="/api/v2/tasks", tags=["tasks"])


def _lifecycle(session: AsyncSession) -> TaskLifecycle:
    return TaskLifecycle(
        tasks=TaskRepository(session),
        executions=ExecutionRepository(session),
        signals=SignalDispatcher(lambda: temporal_adapter.get_client()),
        notifier=NotificationService(session),
        audit=ActivityAuditLog(session),
    )


def _response(result: TaskTransitionResult) -> TaskTransitionResponse:
    return TaskTransitionResponse(
        task=TaskResponse.from_model(result.task),
        workflow_signaled=result.workflow_signaled,
    )


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    require_permission(actor, "tasks.read")
    task = await TaskRepository(session).get(task_id, actor.org_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return TaskResponse.from_model(task)


@router.patch("/{task_id}", response_model=TaskTransitionResponse)
async def update_task(
    task_id: str,
    payload: Dict[str, Any] = Body(...),
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    """Update editable task fields (title, description, priority, due_date, assignment)."""
    require_permission(actor, "tasks.write")
    try:
        result = await _lifecycle(session).mutate(task_id, actor, payload)
    except WorkflowCoreError as e:
        raise http_error(e)
    return _response(result)


@router.patch("/{task_id}/claim", response_model=TaskTransitionResponse)
async def claim_task(
    task_id: str,
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    require_permission(actor, "tasks.claim")
    try:
        result = await _lifecycle(session).claim(task_id, actor)
    except WorkflowCoreError as e:
        raise http_error(e)
    return _response(result)


@router.patch("/{task_id}/status", response_model=TaskTransitionResponse)
async def set_task_status(
    task_id: str,
    payload: TaskStatusRequest,
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    require_permission(actor, "tasks.write")
    try:
        result = await _lifecycle(session).set_status(task_id, actor, payload.status)
    except WorkflowCoreError as e:
        raise http_error(e)
    return _response(result)


@router.patch("/{task_id}/approve", response_model=TaskTransitionResponse)
async def approve_task(
    task_id: str,
    payload: Optional[TaskDecisionRequest] = None,
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    require_permission(actor, "tasks.write")
    comment = payload.comment if payload else None
    try:
        result = await _lifecycle(session).approve(task_id, actor, comment)
    except WorkflowCoreError as e:
        raise http_error(e)
    return _response(result)


@router.patch("/{task_id}/reject", response_model=TaskTransitionResponse)
async def reject_task(
    task_id: str,
    payload: Optional[TaskDecisionRequest] = None,
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    require_permission(actor, "tasks.write")
    comment = payload.comment if payload else None
    try:
        result = await _lifecycle(session).reject(task_id, actor, comment)
    except WorkflowCoreError as e:
        raise http_error(e)
    return _response(result)
