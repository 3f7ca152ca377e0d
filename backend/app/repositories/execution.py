"""Repository layer for workflow executions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import WorkflowExecutionModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionRepository:
    """Data access layer for workflow executions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        org_id: str,
        workflow_definition_id: str,
        status: str,
        compiled_steps: List[Dict[str, Any]],
        *,
        definition_version: int = 1,
        contact_id: Optional[str] = None,
        started_by: Optional[str] = None,
    ) -> WorkflowExecutionModel:
        """Create an execution row in ``running`` state with its compiled-step snapshot."""
        execution = WorkflowExecutionModel(
            org_id=org_id,
            workflow_definition_id=workflow_definition_id,
            definition_version=definition_version,
            contact_id=contact_id,
            status=status,
            execution_state="running",
            compiled_steps=compiled_steps,
            started_by=started_by,
        )
        self.session.add(execution)
        await self.session.flush()
        return execution

    async def get(self, execution_id: str, org_id: str) -> Optional[WorkflowExecutionModel]:
        result = await self.session.execute(
            select(WorkflowExecutionModel).where(
                WorkflowExecutionModel.id == execution_id,
                WorkflowExecutionModel.org_id == org_id,
            )
        )
        return result.scalar_one_or_none()

    async def set_temporal_ids(
        self, execution_id: str, org_id: str, workflow_id: str, run_id: Optional[str]
    ) -> Optional[WorkflowExecutionModel]:
        execution = await self.get(execution_id, org_id)
        if not execution:
            return None
        execution.temporal_workflow_id = workflow_id
        execution.temporal_run_id = run_id
        await self.session.flush()
        return execution

    async def update_state(
        self,
        execution_id: str,
        org_id: str,
        *,
        status: Optional[str] = None,
        execution_state: Optional[str] = None,
        current_step_id: Optional[str] = None,
        completed: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[WorkflowExecutionModel]:
        """Patch business status and/or execution state.

        ``details`` is merged into the existing metadata.
        """
        execution = await self.get(execution_id, org_id)
        if not execution:
            return None

        if status is not None:
            execution.status = status
        if execution_state is not None:
            execution.execution_state = execution_state
        if current_step_id is not None:
            execution.current_step_id = current_step_id
        if completed:
            execution.completed_at = _utcnow()
        if details:
            execution.details = {**(execution.details or {}), **details}
        execution.updated_at = _utcnow()

        await self.session.flush()
        return execution
