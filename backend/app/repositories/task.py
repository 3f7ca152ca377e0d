"""Repository layer for workflow tasks.

Terminal-boundary writes (claim, complete, decide) are single conditional
UPDATEs: the WHERE clause carries the precondition, ``rowcount`` tells the
caller whether it won the race. Callers commit through ``commit()``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import TaskModel
from flowcore.errors import ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid due_date: {text}")


class TaskRepository:
    """Data access layer for tasks (implements ``flowcore.tasks.lifecycle.TaskStore``)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        org_id: str,
        title: str,
        *,
        workflow_execution_id: Optional[str] = None,
        contact_id: Optional[str] = None,
        created_by_step_id: Optional[str] = None,
        assigned_to: Optional[str] = None,
        assigned_role: Optional[str] = None,
        description: Optional[str] = None,
        task_type: str = "standard",
        priority: str = "medium",
        status: str = "todo",
        due_date: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TaskModel:
        task = TaskModel(
            org_id=org_id,
            title=title,
            workflow_execution_id=workflow_execution_id,
            contact_id=contact_id,
            created_by_step_id=created_by_step_id,
            assigned_to=assigned_to,
            assigned_role=assigned_role,
            description=description,
            task_type=task_type,
            priority=priority,
            status=status,
            due_date=due_date,
            task_metadata=metadata,
        )
        self.session.add(task)
        await self.session.flush()
        return task

    async def get(self, task_id: str, org_id: str) -> Optional[TaskModel]:
        result = await self.session.execute(
            select(TaskModel)
            .where(TaskModel.id == task_id, TaskModel.org_id == org_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def exists(self, task_id: str, org_id: str) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(TaskModel)
            .where(TaskModel.id == task_id, TaskModel.org_id == org_id)
        )
        return (result.scalar() or 0) > 0

    async def list_for_execution(self, execution_id: str) -> List[TaskModel]:
        result = await self.session.execute(
            select(TaskModel)
            .where(TaskModel.workflow_execution_id == execution_id)
            .order_by(TaskModel.created_at)
        )
        return list(result.scalars().all())

    # ── conditional writes ──────────────────────────────────────────────

    async def _update_where(self, task_id: str, org_id: str, *conditions, **values) -> Optional[TaskModel]:
        result = await self.session.execute(
            update(TaskModel)
            .where(TaskModel.id == task_id, TaskModel.org_id == org_id, *conditions)
            .values(updated_at=_utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await self.get(task_id, org_id)

    async def claim_unassigned(self, task_id: str, org_id: str, user_id: str) -> Optional[TaskModel]:
        """Assign to ``user_id`` only while nobody holds the task."""
        return await self._update_where(
            task_id, org_id,
            TaskModel.assigned_to.is_(None),
            assigned_to=user_id,
        )

    async def complete_if_not_done(self, task_id: str, org_id: str) -> Optional[TaskModel]:
        return await self._update_where(
            task_id, org_id,
            TaskModel.status != "done",
            status="done",
            completed_at=_utcnow(),
        )

    async def decide_if_pending(
        self, task_id: str, org_id: str, outcome: str, comment: Optional[str]
    ) -> Optional[TaskModel]:
        """Record an approval outcome; only the first decision wins."""
        return await self._update_where(
            task_id, org_id,
            TaskModel.status != "done",
            TaskModel.task_type == "approval",
            status="done",
            outcome=outcome,
            outcome_comment=comment,
            completed_at=_utcnow(),
        )

    async def set_open_status(self, task_id: str, org_id: str, status: str) -> Optional[TaskModel]:
        return await self._update_where(
            task_id, org_id,
            TaskModel.status != "done",
            status=status,
        )

    async def update_fields(self, task_id: str, org_id: str, fields: Dict[str, Any]) -> Optional[TaskModel]:
        task = await self.get(task_id, org_id)
        if not task:
            return None
        for key, value in fields.items():
            if key == "due_date":
                value = _coerce_datetime(value)
            setattr(task, key, value)
        task.updated_at = _utcnow()
        await self.session.flush()
        return task

    async def commit(self) -> None:
        await self.session.commit()
