"""Temporal Workflow Definitions"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ApplicationError

with workflow.unsafe.imports_passed_through():
    from flowcore.authoring.templates import render
    from flowcore.config import GENERIC_WORKFLOW_NAME
    from flowcore.settings import (
        ACTIVITY_MAX_ATTEMPTS,
        ACTIVITY_START_TO_CLOSE_SECONDS,
        MAX_INTERPRETED_STEPS,
    )
    from flowcore.tasks.signals import APPROVAL_SUBMITTED_SIGNAL, TASK_COMPLETED_SIGNAL
    from flowcore.temporal.interpreter import (
        build_goto_table,
        initial_variables,
        next_index,
        render_recipients,
        system_status,
    )
    from .activities import (
        create_task_activity,
        notify_activity,
        send_email_activity,
        set_execution_state_activity,
    )

# How long to wait for the approvalSubmitted signal once an approval task is done
APPROVAL_SIGNAL_GRACE = timedelta(minutes=1)


@workflow.defn(name=GENERIC_WORKFLOW_NAME)
class GenericWorkflow:
    """Interprets a compiled instruction list for one workflow execution.

    Signals:
        taskCompleted {taskId, completedBy}
        approvalSubmitted {outcome, comment, approvedBy[, taskId]}, attached to
        taskId when given, else to the most recently completed task

    Query:
        get_state
    """

    def __init__(self) -> None:
        self._completed_tasks: Set[str] = set()
        self._last_completed_task: Optional[str] = None
        self._approvals: Dict[str, Dict[str, Any]] = {}
        self._task_types: Dict[str, str] = {}
        self._variables: Dict[str, str] = {}
        self._current_step_id: Optional[str] = None
        self._execution_state = "running"
        self._steps_run = 0

    # ── signals / query ─────────────────────────────────────────────────

    @workflow.signal(name=TASK_COMPLETED_SIGNAL)
    def task_completed(self, payload: Dict[str, Any]) -> None:
        task_id = (payload or {}).get("taskId")
        if task_id:
            self._completed_tasks.add(task_id)
            self._last_completed_task = task_id

    @workflow.signal(name=APPROVAL_SUBMITTED_SIGNAL)
    def approval_submitted(self, payload: Dict[str, Any]) -> None:
        payload = dict(payload or {})
        # Without a taskId the decision belongs to the last completed task; the
        # task API sends taskCompleted then approvalSubmitted back to back, so a
        # completion for another task landing in between would take the approval.
        task_id = payload.get("taskId") or self._last_completed_task
        if task_id:
            self._approvals[task_id] = payload

    @workflow.query
    def get_state(self) -> Dict[str, Any]:
        return {
            "current_step_id": self._current_step_id,
            "execution_state": self._execution_state,
            "steps_run": self._steps_run,
            "completed_tasks": sorted(self._completed_tasks),
            "variables": dict(self._variables),
        }

    # ── helpers ─────────────────────────────────────────────────────────

    async def _activity(self, fn, params: Dict[str, Any]) -> Dict[str, Any]:
        return await workflow.execute_activity(
            fn,
            params,
            start_to_close_timeout=timedelta(seconds=ACTIVITY_START_TO_CLOSE_SECONDS),
            retry_policy=RetryPolicy(maximum_attempts=ACTIVITY_MAX_ATTEMPTS),
        )

    async def _set_state(self, base: Dict[str, Any], **changes: Any) -> None:
        await self._activity(set_execution_state_activity, {**base, **changes})

    def _render(self, value: Any) -> str:
        return render(value if isinstance(value, str) else "", self._variables)

    # ── run ─────────────────────────────────────────────────────────────

    @workflow.run
    async def run(self, params: dict) -> dict:
        """Execute a compiled workflow.

        Args:
            params: Dict with keys:
                - workflow_execution_id, org_id
                - steps: compiled instruction list
                - contact: contact fields (snake_case)
                - statuses: declared status ids
                - variables: declared workflow variables
                - workflow: {id, name, executionId}
        """
        steps: List[Dict[str, Any]] = params.get("steps") or []
        statuses: List[str] = params.get("statuses") or []
        base = {
            "workflow_execution_id": params["workflow_execution_id"],
            "org_id": params["org_id"],
        }
        contact_id = (params.get("contact") or {}).get("id")

        self._variables = initial_variables(
            params.get("contact"), params.get("variables") or [], params.get("workflow"),
        )
        goto_table = build_goto_table(steps)

        try:
            index = 0
            while index < len(steps):
                if self._steps_run >= MAX_INTERPRETED_STEPS:
                    raise ApplicationError(
                        f"Execution exceeded {MAX_INTERPRETED_STEPS} interpreted steps",
                        non_retryable=True,
                    )
                step = steps[index]
                self._current_step_id = step["id"]
                self._steps_run += 1

                finished = await self._execute(step, base, contact_id, statuses)
                if finished:
                    return self.get_state()
                index = next_index(step, index, goto_table, self._variables)

            self._execution_state = "completed"
            await self._set_state(
                base,
                status=system_status("completed", statuses),
                execution_state="completed",
                completed=True,
            )
            return self.get_state()

        except Exception as e:
            self._execution_state = "error"
            workflow.logger.error(f"Execution {base['workflow_execution_id']} failed: {e}")
            await self._set_state(
                base,
                status=system_status("failed", statuses),
                execution_state="error",
                completed=True,
                details={"error": str(e), "failedStepId": self._current_step_id},
            )
            raise

    async def _execute(
        self,
        step: Dict[str, Any],
        base: Dict[str, Any],
        contact_id: Optional[str],
        statuses: List[str],
    ) -> bool:
        """Run one instruction. Returns True when the execution ended early."""
        kind = step.get("type")
        config = step.get("config") or {}

        if kind == "assign_task":
            rendered = {
                **config,
                "title": self._render(config.get("title")),
                "links": [self._render(link) for link in config.get("links") or []],
            }
            if config.get("description"):
                rendered["description"] = self._render(config["description"])
            result = await self._activity(create_task_activity, {
                **base,
                "contact_id": contact_id,
                "step_id": step["id"],
                "config": rendered,
            })
            self._variables[f"{step['id']}.taskId"] = result["taskId"]
            self._task_types[result["taskId"]] = rendered.get("taskType") or "standard"

        elif kind == "wait_for_task":
            return await self._wait_for_task(step, config, base, statuses)

        elif kind == "update_status":
            await self._set_state(base, status=config.get("status"), current_step_id=step["id"])

        elif kind == "send_email":
            await self._activity(send_email_activity, {
                **base,
                "to": self._render(config.get("to")),
                "subject": self._render(config.get("subject")),
                "body": self._render(config.get("body")),
                "from": self._render(config.get("from")),
            })

        elif kind == "notification":
            await self._activity(notify_activity, {
                **base,
                "recipients": render_recipients(config.get("recipients") or {}, self._variables),
                "title": self._render(config.get("title")),
                "message": self._render(config.get("message")),
            })

        # trigger / condition / workflow_end: no side effects
        return False

    async def _wait_for_task(
        self,
        step: Dict[str, Any],
        config: Dict[str, Any],
        base: Dict[str, Any],
        statuses: List[str],
    ) -> bool:
        task_step_id = config.get("taskStepId")
        task_id = self._variables.get(f"{task_step_id}.taskId")
        if not task_id:
            raise ApplicationError(
                f"wait_for_task {step['id']} references {task_step_id} which created no task",
                non_retryable=True,
            )

        await self._set_state(base, current_step_id=step["id"])
        timeout = timedelta(days=max(int(config.get("timeoutDays") or 1), 1))
        try:
            await workflow.wait_condition(lambda: task_id in self._completed_tasks, timeout=timeout)
        except asyncio.TimeoutError:
            workflow.logger.info(f"Task {task_id} not completed within {timeout}; timing out")
            self._execution_state = "timeout"
            await self._set_state(
                base,
                status=system_status("timeout", statuses),
                execution_state="timeout",
                completed=True,
                details={"timedOutTaskId": task_id},
            )
            return True

        if self._task_types.get(task_id) == "approval" and task_id not in self._approvals:
            try:
                await workflow.wait_condition(lambda: task_id in self._approvals, timeout=APPROVAL_SIGNAL_GRACE)
            except asyncio.TimeoutError:
                workflow.logger.warning(f"Approval task {task_id} completed without an approvalSubmitted signal")
        approval = self._approvals.get(task_id)
        if approval:
            self._variables[f"{task_step_id}.outcome"] = approval.get("outcome") or ""
            self._variables[f"{task_step_id}.comment"] = approval.get("comment") or ""
            self._variables[f"{task_step_id}.approvedBy"] = approval.get("approvedBy") or ""
        return False


__all__ = ["GenericWorkflow"]
