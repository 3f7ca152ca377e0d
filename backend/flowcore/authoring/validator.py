"""Pre-lowering validation of authoring definitions (pure Python).

Collects every issue instead of stopping at the first, so the editor can
highlight all problems at once. ``compile_definition`` refuses to lower a
definition with any issue.
"""

from __future__ import annotations

from typing import Any, List, Optional, Set

from flowcore.authoring.models import (
    BRANCH_OPERATORS,
    SUPPORTED_ACTION_TYPES,
    SUPPORTED_ADVANCEMENT_TYPES,
    Action,
    BranchStep,
    StandardStep,
    Step,
    WorkflowDefinition,
)
from flowcore.authoring.templates import VariableRewriter, normalize_branch_field_ref
from flowcore.errors import CompileIssue

_TASK_TYPES = ("standard", "approval")
_RECIPIENT_TYPES = ("organization", "user", "role", "group")


class _Validator:
    def __init__(self, definition: WorkflowDefinition) -> None:
        self.definition = definition
        self.issues: List[CompileIssue] = []
        self.rewriter = VariableRewriter(definition.variables)
        self.status_ids: Set[str] = {s.id for s in definition.statuses}
        self.seen_step_ids: Set[str] = set()
        self.seen_action_ids: Set[str] = set()

    def add(
        self,
        code: str,
        path: str,
        message: str,
        step_id: Optional[str] = None,
        action_id: Optional[str] = None,
    ) -> None:
        self.issues.append(CompileIssue(code, path, message, step_id=step_id, action_id=action_id))

    def check_text_fields(self, step: StandardStep, action: Action, config: dict, keys: List[str], path: str) -> None:
        for key in keys:
            value = config.get(key)
            if value is not None and not isinstance(value, str):
                self.add(
                    "invalid_shape", f"{path}.config.{key}", f'"{key}" must be text.',
                    step_id=step.id, action_id=action.id,
                )

    def check_string_list(self, step: StandardStep, action: Action, value: Any, path: str, label: str) -> bool:
        """Return True when ``value`` is absent or a list of strings."""
        if value is None:
            return True
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            self.add(
                "invalid_shape", path, f"{label} must be a list of strings.",
                step_id=step.id, action_id=action.id,
            )
            return False
        return True

    # ── statuses / trigger ─────────────────────────────────────────────

    def check_statuses(self) -> None:
        statuses = self.definition.statuses
        if not statuses:
            self.add("invalid_status", "statuses", "Workflow definition must include at least one status.")
            return
        seen_ids: Set[str] = set()
        seen_orders: Set[float] = set()
        for index, status in enumerate(statuses):
            if not status.id:
                self.add("invalid_status", f"statuses[{index}].id", "Status id is required.")
            elif status.id in seen_ids:
                self.add("invalid_status", f"statuses[{index}].id", f'Duplicate status id "{status.id}".')
            else:
                seen_ids.add(status.id)
            if status.order in seen_orders:
                self.add("invalid_status", f"statuses[{index}].order", f'Duplicate status order "{status.order}".')
            else:
                seen_orders.add(status.order)

    def check_trigger(self) -> None:
        initial = self.definition.trigger.initial_status
        if initial and initial not in self.status_ids:
            self.add(
                "invalid_status",
                "trigger.initialStatus",
                f'Status "{initial}" is not defined on this workflow.',
            )

    # ── steps ──────────────────────────────────────────────────────────

    def check_steps(self, steps: List[Step], path: str) -> None:
        for index, step in enumerate(steps):
            step_path = f"{path}[{index}]"
            if not step.id or not step.id.strip():
                self.add("invalid_shape", f"{step_path}.id", "Step id is required.")
            elif step.id in self.seen_step_ids:
                self.add("duplicate_step_id", f"{step_path}.id", f'Duplicate step id "{step.id}".', step_id=step.id)
            else:
                self.seen_step_ids.add(step.id)

            if isinstance(step, BranchStep):
                self.check_branch(step, step_path)
            else:
                self.check_standard(step, step_path)

    def check_action(self, step: StandardStep, action: Action, path: str) -> bool:
        """Return True when the action is a supported type."""
        if not action.id or not action.id.strip():
            self.add("invalid_shape", f"{path}.id", "Action id is required.", step_id=step.id)
        elif action.id in self.seen_action_ids:
            self.add(
                "duplicate_action_id", f"{path}.id", f'Duplicate action id "{action.id}".',
                step_id=step.id, action_id=action.id,
            )
        else:
            self.seen_action_ids.add(action.id)

        if action.type not in SUPPORTED_ACTION_TYPES:
            self.add(
                "unsupported_action",
                f"{path}.type",
                f'Action "{action.id}" has type "{action.type}", which is not supported by the runtime compiler.',
                step_id=step.id,
                action_id=action.id,
            )
            return False

        config = action.config
        texts: List[Optional[str]] = []
        if action.type == "create_task":
            assign_to = config.get("assignTo")
            if not isinstance(assign_to, dict) or not (
                (assign_to.get("type") == "role" and assign_to.get("role"))
                or (assign_to.get("type") == "user" and assign_to.get("userId"))
            ):
                self.add(
                    "invalid_shape", f"{path}.config.assignTo",
                    "Create Task must assign to a role or a user.",
                    step_id=step.id, action_id=action.id,
                )
            if config.get("taskType", "standard") not in _TASK_TYPES:
                self.add(
                    "invalid_shape", f"{path}.config.taskType",
                    f'Task type "{config.get("taskType")}" is not supported.',
                    step_id=step.id, action_id=action.id,
                )
            due_days = config.get("dueDays")
            if due_days is not None and (isinstance(due_days, bool) or not isinstance(due_days, int) or due_days < 0):
                self.add(
                    "invalid_shape", f"{path}.config.dueDays",
                    "Due days must be a non-negative whole number.",
                    step_id=step.id, action_id=action.id,
                )
            self.check_text_fields(step, action, config, ["title", "description"], path)
            texts.extend([config.get("title"), config.get("description")])
            if self.check_string_list(step, action, config.get("links"), f"{path}.config.links", "Links"):
                texts.extend(config.get("links") or [])
        elif action.type == "send_email":
            self.check_text_fields(step, action, config, ["to", "subject", "body", "from"], path)
            texts.extend([config.get("to"), config.get("subject"), config.get("body"), config.get("from")])
        elif action.type == "notification":
            recipients = config.get("recipients")
            if not isinstance(recipients, dict) or recipients.get("type") not in _RECIPIENT_TYPES:
                self.add(
                    "invalid_shape", f"{path}.config.recipients",
                    "Notification recipients must be organization, user, role or group.",
                    step_id=step.id, action_id=action.id,
                )
            else:
                self.check_text_fields(step, action, recipients, ["userId", "role"], f"{path}.config.recipients")
                texts.extend([recipients.get("userId"), recipients.get("role")])
                group_ids = recipients.get("groupIds")
                if self.check_string_list(
                    step, action, group_ids, f"{path}.config.recipients.groupIds", "Recipient groups",
                ):
                    texts.extend(group_ids or [])
            self.check_text_fields(step, action, config, ["title", "message"], path)
            texts.extend([config.get("title"), config.get("message")])
        elif action.type == "update_status":
            status_id = config.get("status")
            if status_id is not None and not isinstance(status_id, str):
                self.add(
                    "invalid_shape", f"{path}.config.status", "Status must be a status id.",
                    step_id=step.id, action_id=action.id,
                )
            elif self.status_ids and (not status_id or status_id not in self.status_ids):
                self.add(
                    "invalid_status", f"{path}.config.status",
                    f'Status "{status_id}" is not defined on this workflow.',
                    step_id=step.id, action_id=action.id,
                )

        unsupported: List[str] = []
        for text in texts:
            if isinstance(text, str):
                unsupported.extend(self.rewriter.find_unsupported(text))
        if unsupported:
            self.add(
                "unsupported_variable_reference",
                f"{path}.config",
                f"Unsupported variable reference(s): {', '.join(unsupported)}.",
                step_id=step.id,
                action_id=action.id,
            )
        return True

    def check_standard(self, step: StandardStep, path: str) -> None:
        create_task_ids: Set[str] = set()
        for index, action in enumerate(step.actions):
            supported = self.check_action(step, action, f"{path}.actions[{index}]")
            if supported and action.type == "create_task":
                create_task_ids.add(action.id)

        condition = step.advancement_condition
        cond_path = f"{path}.advancementCondition"
        if condition.type not in SUPPORTED_ADVANCEMENT_TYPES:
            self.add(
                "unsupported_advancement", f"{cond_path}.type",
                f'Advancement condition "{condition.type}" is not supported by the runtime compiler.',
                step_id=step.id,
            )
            return

        if condition.type == "when_task_completed":
            task_action_id = condition.config.get("taskActionId")
            if task_action_id is not None and not isinstance(task_action_id, str):
                self.add(
                    "invalid_shape", f"{cond_path}.config.taskActionId",
                    "Task advancement must reference a Create Task action id.",
                    step_id=step.id,
                )
            elif task_action_id not in create_task_ids:
                self.add(
                    "invalid_advancement", f"{cond_path}.config.taskActionId",
                    f'Task advancement references "{task_action_id}", which is not a '
                    f"Create Task action in the same step.",
                    step_id=step.id,
                    action_id=task_action_id if isinstance(task_action_id, str) else None,
                )

    def check_branch(self, step: BranchStep, path: str) -> None:
        condition = step.condition
        track_count = len(step.tracks)

        if condition.operator not in BRANCH_OPERATORS:
            self.add(
                "unsupported_advancement", f"{path}.condition.operator",
                f'Branch operator "{condition.operator}" is not supported by the runtime compiler.',
                step_id=step.id,
            )
        elif condition.operator == "in":
            values = condition.compare_value
            if track_count < 2:
                self.add("invalid_branch", f"{path}.tracks", "Branch steps must contain at least two tracks.",
                         step_id=step.id)
            if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                self.add("invalid_branch", f"{path}.condition.compareValue",
                         "Branch compare value must be a list of strings for the 'in' operator.",
                         step_id=step.id)
            elif track_count >= 2 and len(values) != track_count - 1:
                self.add("invalid_branch", f"{path}.condition.compareValue",
                         f"Branch with {track_count} tracks needs {track_count - 1} compare values "
                         f"(the last track is the default).",
                         step_id=step.id)
        else:
            if track_count != 2:
                self.add("invalid_branch", f"{path}.tracks", "Branch steps must contain exactly two tracks.",
                         step_id=step.id)
            if not isinstance(condition.compare_value, str):
                self.add("invalid_branch", f"{path}.condition.compareValue",
                         "Branch compare value must be a string.", step_id=step.id)

        if normalize_branch_field_ref(condition.variable_ref) is None:
            self.add(
                "unsupported_variable_reference", f"{path}.condition.variableRef",
                "Branch condition variable must be a contact variable reference "
                "(for example: var-contact.email).",
                step_id=step.id,
            )

        for index, track in enumerate(step.tracks):
            track_path = f"{path}.tracks[{index}]"
            if not track.steps:
                self.add("invalid_branch", f"{track_path}.steps",
                         "Each branch track must contain at least one step.", step_id=step.id)
            self.check_steps(track.steps, f"{track_path}.steps")


def validate_definition(definition: WorkflowDefinition) -> List[CompileIssue]:
    """Return every issue that blocks compilation (empty list when valid)."""
    validator = _Validator(definition)
    validator.check_statuses()
    validator.check_trigger()
    validator.check_steps(definition.steps, "steps")
    return validator.issues
