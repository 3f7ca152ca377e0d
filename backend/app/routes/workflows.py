"""Workflow definition and execution trigger API endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_actor, require_permission
from app.database import get_session
from app.execution_trigger import ExecutionTrigger
from app.models.schemas import (
    CompileResponse,
    DefinitionResponse,
    WorkflowTriggerRequest,
    WorkflowTriggerResponse,
)
from app.repositories.definition import DefinitionRepository
from flowcore.access.roles import AccessContext
from flowcore.authoring import compile_to_payload
from flowcore.errors import WorkflowCoreError

from .common import http_error

logger = logging.getLogger("app.routes.workflows")

router = APIRouter(prefix="/api/v2", tags=["workflows"])


def _compile_response(steps) -> CompileResponse:
    return CompileResponse(steps=steps, step_count=len(steps))


# --- Definitions ---


@router.post("/workflow-definitions", response_model=DefinitionResponse, status_code=201)
async def create_definition(
    payload: Dict[str, Any] = Body(...),
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    """Store a definition. It must compile; issues are returned as 422."""
    require_permission(actor, "workflow-definitions.write")
    try:
        compile_to_payload(payload)
    except WorkflowCoreError as e:
        raise http_error(e)

    record = await DefinitionRepository(session).create(actor.org_id, payload)
    logger.info(f"Definition {record.id} created by {actor.user_id}")
    return DefinitionResponse(
        id=record.id,
        name=record.name,
        version=record.version,
        definition=record.to_authoring_dict(),
    )


@router.post("/workflow-definitions/compile", response_model=CompileResponse)
async def compile_inline_definition(
    payload: Dict[str, Any] = Body(...),
    actor: AccessContext = Depends(get_actor),
):
    """Compile an unsaved definition (editor preview)."""
    require_permission(actor, "workflow-definitions.read")
    try:
        steps = compile_to_payload(payload)
    except WorkflowCoreError as e:
        raise http_error(e)
    return _compile_response(steps)


@router.post("/workflow-definitions/{definition_id}/compile", response_model=CompileResponse)
async def compile_stored_definition(
    definition_id: str,
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    require_permission(actor, "workflow-definitions.read")
    record = await DefinitionRepository(session).get(definition_id, actor.org_id)
    if not record:
        raise HTTPException(status_code=404, detail="Workflow definition not found")
    try:
        steps = compile_to_payload(record.to_authoring_dict())
    except WorkflowCoreError as e:
        raise http_error(e)
    return _compile_response(steps)


# --- Executions ---


@router.post("/workflows/trigger", response_model=WorkflowTriggerResponse, status_code=201)
async def trigger_workflow(
    payload: WorkflowTriggerRequest,
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    """Start a GenericWorkflow for a stored definition.

    Returns 503 when Temporal is unreachable; the execution row is then
    already marked as errored.
    """
    require_permission(actor, "workflows.trigger")
    try:
        result = await ExecutionTrigger(session).trigger(
            payload.workflow_definition_id, actor, contact_id=payload.contact_id,
        )
    except WorkflowCoreError as e:
        raise http_error(e)

    execution = result.execution
    return WorkflowTriggerResponse(
        workflow_execution_id=execution.id,
        temporal_workflow_id=execution.temporal_workflow_id,
        status=execution.status,
        execution=execution.to_dict(),
    )
