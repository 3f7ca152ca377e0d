"""Task lifecycle state machine: claim, mutate, status, approve, reject.

States: backlog -> todo -> in_progress -> done. ``done`` is terminal.
Standard tasks reach ``done`` through ``set_status``; approval tasks only
through ``approve`` / ``reject``.

Every write that crosses a terminal boundary (``assigned_to`` null -> set,
``status`` non-done -> done) is a single conditional UPDATE in the store.
A ``None`` result means the race was lost; the current row is then re-read
to classify the outcome (not found / conflict).

The task row is committed before any workflow signal is attempted. Signal,
notification and audit failures are logged and never undo the transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from flowcore.access.roles import AccessContext, can_access_assigned_role, can_mutate_task
from flowcore.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from flowcore.tasks.approval import requires_approval_comment
from flowcore.tasks.signals import (
    APPROVAL_SUBMITTED_SIGNAL,
    TASK_COMPLETED_SIGNAL,
    SignalDispatcher,
    approval_submitted_payload,
    task_completed_payload,
)

logger = logging.getLogger(__name__)

TASK_STATUSES = ("backlog", "todo", "in_progress", "done")
TASK_TYPES = ("standard", "approval")
TASK_PRIORITIES = ("low", "medium", "high")
OUTCOMES = ("approved", "rejected")

# Fields accepted by ``mutate``; status has its own operation.
MUTABLE_FIELDS = ("title", "description", "priority", "due_date", "assigned_to", "assigned_role")


# ---------------------------------------------------------------------------
# Collaborator protocols (implemented in app.repositories / app.notifications)
# ---------------------------------------------------------------------------


class TaskRecord(Protocol):
    id: str
    org_id: str
    workflow_execution_id: Optional[str]
    created_by_step_id: Optional[str]
    assigned_to: Optional[str]
    assigned_role: Optional[str]
    task_type: str
    status: str
    outcome: Optional[str]
    outcome_comment: Optional[str]
    title: str


class TaskStore(Protocol):
    async def get(self, task_id: str, org_id: str) -> Optional[TaskRecord]: ...

    async def exists(self, task_id: str, org_id: str) -> bool: ...

    async def claim_unassigned(self, task_id: str, org_id: str, user_id: str) -> Optional[TaskRecord]: ...

    async def complete_if_not_done(self, task_id: str, org_id: str) -> Optional[TaskRecord]: ...

    async def decide_if_pending(
        self, task_id: str, org_id: str, outcome: str, comment: Optional[str]
    ) -> Optional[TaskRecord]: ...

    async def set_open_status(self, task_id: str, org_id: str, status: str) -> Optional[TaskRecord]: ...

    async def update_fields(self, task_id: str, org_id: str, fields: Dict[str, Any]) -> Optional[TaskRecord]: ...

    async def commit(self) -> None: ...


class ExecutionRecord(Protocol):
    temporal_workflow_id: Optional[str]
    compiled_steps: Optional[List[Dict[str, Any]]]


class ExecutionLookup(Protocol):
    async def get(self, execution_id: str, org_id: str) -> Optional[ExecutionRecord]: ...


class AssignmentNotifier(Protocol):
    async def task_assigned(
        self, org_id: str, user_id: str, task_id: str, task_title: str, assigned_by: Optional[str]
    ) -> None: ...


class AuditLog(Protocol):
    async def record(
        self, org_id: str, user_id: str, entity_type: str, entity_id: str, action: str, details: Dict[str, Any]
    ) -> None: ...


@dataclass
class TaskTransitionResult:
    task: Any
    workflow_signaled: bool = False


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class TaskLifecycle:
    def __init__(
        self,
        tasks: TaskStore,
        executions: ExecutionLookup,
        signals: Optional[SignalDispatcher] = None,
        notifier: Optional[AssignmentNotifier] = None,
        audit: Optional[AuditLog] = None,
    ):
        self.tasks = tasks
        self.executions = executions
        self.signals = signals
        self.notifier = notifier
        self.audit = audit

    # ── helpers ─────────────────────────────────────────────────────────

    async def _load(self, task_id: str, actor: AccessContext) -> TaskRecord:
        task = await self.tasks.get(task_id, actor.org_id)
        if task is None:
            raise NotFoundError("Task not found")
        return task

    async def _record(self, actor: AccessContext, task_id: str, action: str, details: Dict[str, Any]) -> None:
        if self.audit is None:
            return
        try:
            await self.audit.record(actor.org_id, actor.user_id, "task", task_id, action, details)
        except Exception as exc:
            logger.warning(f"Audit write for task {task_id} ({action}) failed: {exc}")

    async def _execution(self, task: TaskRecord, actor: AccessContext) -> Optional[ExecutionRecord]:
        if not task.workflow_execution_id:
            return None
        return await self.executions.get(task.workflow_execution_id, actor.org_id)

    async def _workflow_id(self, task: TaskRecord, actor: AccessContext) -> Optional[str]:
        if self.signals is None or not task.workflow_execution_id:
            return None
        try:
            execution = await self._execution(task, actor)
        except Exception as exc:
            logger.warning(f"Execution lookup for task {task.id} failed: {exc}")
            return None
        if execution is None or not execution.temporal_workflow_id:
            logger.info(f"Task {task.id} has no running workflow to signal")
            return None
        return execution.temporal_workflow_id

    # ── claim ───────────────────────────────────────────────────────────

    async def claim(self, task_id: str, actor: AccessContext) -> TaskTransitionResult:
        task = await self._load(task_id, actor)

        if not task.assigned_role:
            raise ValidationError("Task is not assigned to a role and cannot be claimed")
        if task.assigned_to:
            raise ConflictError(
                "Task already claimed by another user",
                status=task.status,
                assigned_to=task.assigned_to,
            )
        if not can_access_assigned_role(actor, task.assigned_role):
            raise AuthorizationError("You do not have the role required to claim this task")

        claimed = await self.tasks.claim_unassigned(task_id, actor.org_id, actor.user_id)
        if claimed is None:
            if not await self.tasks.exists(task_id, actor.org_id):
                raise NotFoundError("Task not found")
            current = await self.tasks.get(task_id, actor.org_id)
            raise ConflictError(
                "Task already claimed by another user",
                status=current.status if current else None,
                assigned_to=current.assigned_to if current else None,
            )

        await self.tasks.commit()
        logger.info(f"Task {task_id} claimed by {actor.user_id}")
        await self._record(actor, task_id, "claimed", {"assignedRole": task.assigned_role})
        return TaskTransitionResult(task=claimed)

    # ── mutate ──────────────────────────────────────────────────────────

    async def mutate(self, task_id: str, actor: AccessContext, changes: Dict[str, Any]) -> TaskTransitionResult:
        if "status" in changes:
            raise ValidationError("Use the status operation to change task status")
        unknown = sorted(set(changes) - set(MUTABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Unsupported task field(s): {', '.join(unknown)}")
        if "priority" in changes and changes["priority"] not in TASK_PRIORITIES:
            raise ValidationError(f"Invalid priority: {changes['priority']}")
        if "title" in changes and not (isinstance(changes["title"], str) and changes["title"].strip()):
            raise ValidationError("Task title cannot be empty")

        task = await self._load(task_id, actor)
        if not can_mutate_task(actor, task):
            raise AuthorizationError("You do not have permission to update this task")

        previous_assignee = task.assigned_to
        updated = await self.tasks.update_fields(task_id, actor.org_id, changes)
        if updated is None:
            raise NotFoundError("Task not found")
        await self.tasks.commit()

        new_assignee = changes.get("assigned_to")
        if (
            self.notifier is not None
            and new_assignee
            and new_assignee != previous_assignee
            and new_assignee != actor.user_id
        ):
            try:
                await self.notifier.task_assigned(
                    actor.org_id, new_assignee, task_id, updated.title, actor.user_id
                )
            except Exception as exc:
                logger.warning(f"Assignment notification for task {task_id} failed: {exc}")

        await self._record(actor, task_id, "updated", {"fields": sorted(changes)})
        return TaskTransitionResult(task=updated)

    # ── status ──────────────────────────────────────────────────────────

    async def set_status(self, task_id: str, actor: AccessContext, status: str) -> TaskTransitionResult:
        if status not in TASK_STATUSES:
            raise ValidationError("Invalid status")

        task = await self._load(task_id, actor)
        if not can_mutate_task(actor, task):
            raise AuthorizationError("You do not have permission to update this task")
        if task.task_type == "approval" and status == "done":
            raise ValidationError(
                "Approval tasks cannot be marked done via status. Use approve or reject."
            )

        previous_status = task.status

        if status == "done":
            completed = await self.tasks.complete_if_not_done(task_id, actor.org_id)
            if completed is None:
                # Already done (possibly concurrently): idempotent success, no signal.
                return TaskTransitionResult(task=await self._load(task_id, actor))
            await self.tasks.commit()

            signaled = False
            workflow_id = await self._workflow_id(completed, actor)
            if workflow_id:
                signaled = await self.signals.dispatch(
                    workflow_id, TASK_COMPLETED_SIGNAL, task_completed_payload(task_id, actor.user_id)
                )
            await self._record(actor, task_id, "status_changed", {"from": previous_status, "to": status})
            return TaskTransitionResult(task=completed, workflow_signaled=signaled)

        if task.status == "done":
            raise ConflictError("Task is already done", status=task.status, outcome=task.outcome)

        updated = await self.tasks.set_open_status(task_id, actor.org_id, status)
        if updated is None:
            current = await self._load(task_id, actor)
            raise ConflictError("Task is already done", status=current.status, outcome=current.outcome)
        await self.tasks.commit()
        await self._record(actor, task_id, "status_changed", {"from": previous_status, "to": status})
        return TaskTransitionResult(task=updated)

    # ── approve / reject ────────────────────────────────────────────────

    async def approve(self, task_id: str, actor: AccessContext, comment: Optional[str] = None) -> TaskTransitionResult:
        return await self._decide(task_id, actor, "approved", comment)

    async def reject(self, task_id: str, actor: AccessContext, comment: Optional[str] = None) -> TaskTransitionResult:
        return await self._decide(task_id, actor, "rejected", comment)

    async def _decide(
        self, task_id: str, actor: AccessContext, outcome: str, comment: Optional[str]
    ) -> TaskTransitionResult:
        if comment is not None and not isinstance(comment, str):
            raise ValidationError("comment must be a string when provided")
        comment = (comment or "").strip() or None

        task = await self._load(task_id, actor)
        if not can_mutate_task(actor, task):
            verb = "approve" if outcome == "approved" else "reject"
            raise AuthorizationError(f"You do not have permission to {verb} this task")
        if task.task_type != "approval":
            raise ValidationError("Task is not an approval task")
        if task.status == "done":
            raise ConflictError("Task already completed", status=task.status, outcome=task.outcome)

        execution = await self._execution(task, actor)
        steps = execution.compiled_steps if execution is not None else None
        if requires_approval_comment(steps, task.created_by_step_id) and not comment:
            raise ValidationError("A comment is required for this approval step")

        decided = await self.tasks.decide_if_pending(task_id, actor.org_id, outcome, comment)
        if decided is None:
            current = await self._load(task_id, actor)
            if current.task_type != "approval":
                raise ValidationError("Task is not an approval task")
            raise ConflictError("Task already completed", status=current.status, outcome=current.outcome)
        await self.tasks.commit()
        logger.info(f"Task {task_id} {outcome} by {actor.user_id}")

        signaled = False
        workflow_id = await self._workflow_id(decided, actor)
        if workflow_id:
            completed_ok = await self.signals.dispatch(
                workflow_id, TASK_COMPLETED_SIGNAL, task_completed_payload(task_id, actor.user_id)
            )
            approval_ok = await self.signals.dispatch(
                workflow_id, APPROVAL_SUBMITTED_SIGNAL,
                approval_submitted_payload(outcome, comment, actor.user_id),
            )
            signaled = completed_ok or approval_ok

        await self._record(actor, task_id, "status_changed", {"outcome": outcome, "comment": comment})
        return TaskTransitionResult(task=decided, workflow_signaled=signaled)
