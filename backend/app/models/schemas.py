"""Pydantic request/response schemas for the v2 API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


# ─── Tasks ───────────────────────────────────────────────────────────


class TaskResponse(BaseModel):
    id: str
    org_id: str
    workflow_execution_id: Optional[str] = None
    contact_id: Optional[str] = None
    created_by_step_id: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_role: Optional[str] = None
    title: str
    description: Optional[str] = None
    task_type: str
    status: str
    priority: str
    outcome: Optional[str] = None
    outcome_comment: Optional[str] = None
    due_date: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_model(cls, task) -> "TaskResponse":
        return cls(
            id=task.id,
            org_id=task.org_id,
            workflow_execution_id=task.workflow_execution_id,
            contact_id=task.contact_id,
            created_by_step_id=task.created_by_step_id,
            assigned_to=task.assigned_to,
            assigned_role=task.assigned_role,
            title=task.title,
            description=task.description,
            task_type=task.task_type,
            status=task.status,
            priority=task.priority,
            outcome=task.outcome,
            outcome_comment=task.outcome_comment,
            due_date=_iso(task.due_date),
            completed_at=_iso(task.completed_at),
            created_at=_iso(task.created_at),
            updated_at=_iso(task.updated_at),
        )


class TaskTransitionResponse(BaseModel):
    task: TaskResponse
    workflow_signaled: bool = False


class TaskStatusRequest(BaseModel):
    """Request for PATCH /api/v2/tasks/{id}/status."""
    status: str = Field(..., description="backlog | todo | in_progress | done")


class TaskDecisionRequest(BaseModel):
    """Request for PATCH /api/v2/tasks/{id}/approve and /reject."""
    # Type-checked by the lifecycle so a non-string yields a 400
    comment: Optional[Any] = None


# ─── Workflows ───────────────────────────────────────────────────────


class WorkflowTriggerRequest(BaseModel):
    """Request for POST /api/v2/workflows/trigger."""
    workflow_definition_id: str = Field(..., min_length=1)
    contact_id: Optional[str] = None


class WorkflowTriggerResponse(BaseModel):
    workflow_execution_id: str
    temporal_workflow_id: Optional[str] = None
    status: str
    execution: Dict[str, Any]


class CompileResponse(BaseModel):
    steps: List[Dict[str, Any]]
    step_count: int


class DefinitionResponse(BaseModel):
    id: str
    name: str
    version: int
    definition: Dict[str, Any]
