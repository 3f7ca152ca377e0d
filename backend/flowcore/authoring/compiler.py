"""Authoring -> runtime compiler.

Lowers a branch-capable ``WorkflowDefinition`` into the flat instruction list
executed by ``GenericWorkflow``:

    [trigger_start, <step instructions>..., workflow_end]

Branch layout (N tracks)::

    condition, T1..., jump->merge, T2..., jump->merge, ..., Tn..., merge

A track whose last step is itself a branch skips the jump; the nested merge
targets the outer merge instead. Each merge targets the first instruction of
the next authored step, or the enclosing continuation (outer merge or
``workflow_end``).
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from flowcore.authoring.models import (
    BranchStep,
    RuntimeStep,
    StandardStep,
    Step,
    WorkflowDefinition,
    parse_definition,
)
from flowcore.authoring.templates import VariableRewriter, normalize_branch_field_ref
from flowcore.authoring.validator import validate_definition
from flowcore.errors import CompileError
from flowcore.settings import DEFAULT_WAIT_TIMEOUT_DAYS

logger = logging.getLogger(__name__)

TRIGGER_STEP_ID = "trigger_start"
END_STEP_ID = "workflow_end"

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_REPEATED_UNDERSCORES = re.compile(r"_+")


def create_runtime_step_id(base: str, used_ids: Set[str]) -> str:
    """Sanitise ``base`` and make it unique within ``used_ids`` (``__1``, ``__2`` ...)."""
    safe = _REPEATED_UNDERSCORES.sub("_", _UNSAFE_ID_CHARS.sub("_", base.strip())) or "step"
    candidate = safe
    index = 1
    while candidate in used_ids:
        candidate = f"{safe}__{index}"
        index += 1
    used_ids.add(candidate)
    return candidate


class _Target:
    """Forward reference to an instruction id that is not allocated yet."""

    __slots__ = ("step_id",)

    def __init__(self, step_id: Optional[str] = None) -> None:
        self.step_id = step_id


class _Compiler:
    def __init__(self, definition: WorkflowDefinition) -> None:
        self.definition = definition
        self.used_ids: Set[str] = set()
        self.rewriter = VariableRewriter(definition.variables)
        # (branch entry dict, target) pairs patched once every id is known
        self.fixups: List[Tuple[Dict[str, Any], _Target]] = []

    # ── helpers ─────────────────────────────────────────────────────────

    def _id(self, base: str) -> str:
        return create_runtime_step_id(base, self.used_ids)

    def _goto(self, step_id: str, label: str, phase_id: Optional[str], target: _Target) -> RuntimeStep:
        """Unconditional jump: a condition whose field always renders to "1"."""
        entry: Dict[str, Any] = {"value": "1", "gotoStepId": None}
        self.fixups.append((entry, target))
        return RuntimeStep(
            id=step_id,
            type="condition",
            label=label,
            phase_id=phase_id,
            config={"field": "1", "operator": "equals", "branches": [entry]},
        )

    # ── trigger / end ───────────────────────────────────────────────────

    def trigger_step(self) -> RuntimeStep:
        trigger = self.definition.trigger
        config: Dict[str, Any] = {
            "triggerType": trigger.type,
            "contactRequired": self.definition.contact_required,
        }
        if trigger.type == "contact_status":
            config["statusValue"] = trigger.status_value or ""
        elif trigger.type == "form_submission":
            config["formId"] = trigger.form_id or ""
        if trigger.initial_status:
            config["initialStatus"] = trigger.initial_status
        return RuntimeStep(id=self._id(TRIGGER_STEP_ID), type="trigger", label="Trigger", config=config)

    # ── standard steps ──────────────────────────────────────────────────

    def compile_standard(self, step: StandardStep) -> List[RuntimeStep]:
        out: List[RuntimeStep] = []
        task_steps: Dict[str, Tuple[str, Optional[int]]] = {}
        rw = self.rewriter.rewrite

        for index, action in enumerate(step.actions):
            config = action.config
            step_id = self._id(action.id or f"{step.id}__action_{index + 1}")

            if action.type == "create_task":
                due_days = config.get("dueDays")
                task_config: Dict[str, Any] = {
                    "title": rw(config.get("title") or ""),
                    "links": [
                        rw(link) for link in config.get("links") or []
                        if isinstance(link, str) and link.strip()
                    ],
                    "taskType": config.get("taskType") or "standard",
                    "assignTo": dict(config["assignTo"]),
                    "priority": config.get("priority") or "medium",
                    "requireComment": bool(config.get("requireComment", False)),
                }
                if config.get("description"):
                    task_config["description"] = rw(config["description"])
                if due_days is not None:
                    task_config["dueDays"] = due_days
                out.append(RuntimeStep(
                    id=step_id, type="assign_task", label=f"{step.name}: Create Task",
                    phase_id=step.phase_id, config=task_config,
                ))
                task_steps[action.id] = (step_id, due_days)

            elif action.type == "send_email":
                email_config = {
                    "to": rw(config.get("to") or ""),
                    "subject": rw(config.get("subject") or ""),
                    "body": rw(config.get("body") or ""),
                }
                if config.get("from"):
                    email_config["from"] = rw(config["from"])
                out.append(RuntimeStep(
                    id=step_id, type="send_email", label=f"{step.name}: Send Email",
                    phase_id=step.phase_id, config=email_config,
                ))

            elif action.type == "notification":
                out.append(RuntimeStep(
                    id=step_id, type="notification", label=f"{step.name}: Notification",
                    phase_id=step.phase_id,
                    config={
                        "recipients": self._recipients(config["recipients"]),
                        "title": rw(config.get("title") or ""),
                        "message": rw(config.get("message") or ""),
                    },
                ))

            elif action.type == "update_status":
                out.append(RuntimeStep(
                    id=step_id, type="update_status", label=f"{step.name}: Update Status",
                    phase_id=step.phase_id, config={"status": config["status"]},
                ))

        condition = step.advancement_condition
        if condition.type == "when_task_completed":
            task_step_id, due_days = task_steps[condition.config["taskActionId"]]
            out.append(RuntimeStep(
                id=self._id(f"{step.id}__wait_task"),
                type="wait_for_task",
                label=f"{step.name}: Wait for Task",
                phase_id=step.phase_id,
                config={
                    "taskStepId": task_step_id,
                    "timeoutDays": max(due_days if due_days is not None else DEFAULT_WAIT_TIMEOUT_DAYS, 1),
                },
            ))

        if not out:
            out.append(RuntimeStep(
                id=self._id(f"{step.id}__anchor"),
                type="trigger",
                label=f"{step.name}: Anchor",
                phase_id=step.phase_id,
                config={"triggerType": "manual"},
            ))
        return out

    def _recipients(self, recipients: Dict[str, Any]) -> Dict[str, Any]:
        rw = self.rewriter.rewrite
        kind = recipients["type"]
        if kind == "user":
            return {"type": "user", "userId": rw(recipients.get("userId") or "")}
        if kind == "role":
            return {"type": "role", "role": rw(recipients.get("role") or "")}
        if kind == "group":
            return {"type": "group", "groupIds": [rw(g) for g in recipients.get("groupIds") or []]}
        return {"type": "organization"}

    # ── branch steps ────────────────────────────────────────────────────

    def compile_branch(self, step: BranchStep, follow: _Target) -> List[RuntimeStep]:
        condition_id = self._id(f"{step.id}__condition")
        merge_id = self._id(f"{step.id}__merge")
        to_merge = _Target(merge_id)

        track_starts: List[str] = []
        body: List[RuntimeStep] = []
        last_index = len(step.tracks) - 1
        for index, track in enumerate(step.tracks):
            instructions = self.compile_sequence(track.steps, to_merge)
            track_starts.append(instructions[0].id)
            body.extend(instructions)
            if index < last_index and isinstance(track.steps[-1], StandardStep):
                body.append(self._goto(
                    self._id(f"{step.id}__skip_track_{index + 1}"),
                    f"{step.name}: Skip to Merge",
                    step.phase_id,
                    to_merge,
                ))

        operator = step.condition.operator
        compare = step.condition.compare_value
        if operator == "equals":
            branches = [{"value": compare, "gotoStepId": track_starts[0]}]
            default = track_starts[1]
        elif operator == "not_equals":
            branches = [{"value": compare, "gotoStepId": track_starts[1]}]
            default = track_starts[0]
        else:  # in
            branches = [{"value": value, "gotoStepId": track_starts[i]} for i, value in enumerate(compare)]
            default = track_starts[-1]

        condition_step = RuntimeStep(
            id=condition_id,
            type="condition",
            label=f"{step.name}: Branch",
            phase_id=step.phase_id,
            config={
                "field": normalize_branch_field_ref(step.condition.variable_ref),
                "operator": operator,
                "branches": branches,
                "defaultGotoStepId": default,
            },
        )
        merge_step = self._goto(merge_id, f"{step.name}: Merge", step.phase_id, follow)
        return [condition_step, *body, merge_step]

    # ── sequences ───────────────────────────────────────────────────────

    def compile_sequence(self, steps: List[Step], follow: _Target) -> List[RuntimeStep]:
        """Compile ``steps`` in order; a branch merges into the next step (or ``follow``)."""
        starts = [_Target() for _ in steps]
        out: List[RuntimeStep] = []
        for index, step in enumerate(steps):
            next_target = starts[index + 1] if index + 1 < len(steps) else follow
            if isinstance(step, BranchStep):
                chunk = self.compile_branch(step, next_target)
            else:
                chunk = self.compile_standard(step)
            starts[index].step_id = chunk[0].id
            out.extend(chunk)
        return out

    def run(self) -> List[RuntimeStep]:
        trigger = self.trigger_step()
        end_target = _Target()
        body = self.compile_sequence(self.definition.steps, end_target)
        end = RuntimeStep(
            id=self._id(END_STEP_ID),
            type="trigger",
            label="Workflow End",
            config={"triggerType": "manual"},
        )
        end_target.step_id = end.id

        for entry, target in self.fixups:
            entry["gotoStepId"] = target.step_id
        return [trigger, *body, end]


def compile_definition(definition: Union[WorkflowDefinition, Dict[str, Any]]) -> List[RuntimeStep]:
    """Compile an authoring definition into runtime instructions.

    Accepts a parsed ``WorkflowDefinition`` or the editor's raw JSON dict.

    Raises:
        CompileError: if any validation issue is found; nothing is emitted.
    """
    if not isinstance(definition, WorkflowDefinition):
        definition = parse_definition(definition)

    issues = validate_definition(definition)
    if issues:
        logger.info(
            f"Definition {definition.id or '<inline>'} rejected with {len(issues)} issue(s): "
            f"{[issue.code for issue in issues]}"
        )
        raise CompileError(issues)

    steps = _Compiler(definition).run()
    logger.debug(f"Definition {definition.id or '<inline>'} compiled to {len(steps)} instructions")
    return steps


def compile_to_payload(definition: Union[WorkflowDefinition, Dict[str, Any]]) -> List[Dict[str, Any]]:
    """``compile_definition`` serialised to JSON-ready dicts (execution snapshot format)."""
    return [step.to_dict() for step in compile_definition(definition)]
