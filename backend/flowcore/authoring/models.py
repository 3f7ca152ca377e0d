"""Authoring definition model and the compiled runtime instruction type.

The editor stores definitions as camelCase JSON. ``parse_definition`` turns
that JSON into a tagged-union AST (``StandardStep | BranchStep``) which the
compiler lowers into a flat list of ``RuntimeStep``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from flowcore.errors import CompileError, CompileIssue

# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------

TRIGGER_TYPES = ("manual", "contact_status", "form_submission", "api")

SUPPORTED_ACTION_TYPES = ("create_task", "send_email", "update_status", "notification")

SUPPORTED_ADVANCEMENT_TYPES = ("automatic", "when_task_completed")

BRANCH_OPERATORS = ("equals", "not_equals", "in")

RUNTIME_STEP_TYPES = (
    "trigger",
    "assign_task",
    "send_email",
    "notification",
    "wait_for_task",
    "condition",
    "update_status",
)


# ---------------------------------------------------------------------------
# Authoring AST
# ---------------------------------------------------------------------------


@dataclass
class StatusDefinition:
    id: str
    label: str
    order: int
    color: Optional[str] = None


@dataclass
class Phase:
    id: str
    name: str
    order: int
    color: Optional[str] = None


@dataclass
class WorkflowVariable:
    """Declared workflow variable. Only ``source.type == "custom"`` is referenceable."""

    id: str
    name: str
    type: str
    source: Dict[str, Any]

    @property
    def is_custom(self) -> bool:
        return self.source.get("type") == "custom"


@dataclass
class Trigger:
    type: str = "manual"
    initial_status: Optional[str] = None
    status_value: Optional[str] = None
    form_id: Optional[str] = None


@dataclass
class Action:
    id: str
    type: str
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AdvancementCondition:
    type: str
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StandardStep:
    id: str
    name: str
    actions: List[Action]
    advancement_condition: AdvancementCondition
    phase_id: Optional[str] = None


@dataclass
class BranchCondition:
    variable_ref: str
    operator: str
    compare_value: Any


@dataclass
class Track:
    id: str
    label: str
    steps: List["Step"]


@dataclass
class BranchStep:
    id: str
    name: str
    condition: BranchCondition
    tracks: List[Track]
    phase_id: Optional[str] = None


Step = Union[StandardStep, BranchStep]


@dataclass
class WorkflowDefinition:
    id: str
    name: str
    trigger: Trigger
    contact_required: bool
    statuses: List[StatusDefinition]
    steps: List[Step]
    variables: List[WorkflowVariable] = field(default_factory=list)
    phases: List[Phase] = field(default_factory=list)
    description: Optional[str] = None


# ---------------------------------------------------------------------------
# Compiled form
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuntimeStep:
    """One instruction of the compiled program consumed by ``GenericWorkflow``."""

    id: str
    type: str
    label: str
    config: Dict[str, Any]
    phase_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "config": self.config,
        }
        if self.phase_id is not None:
            data["phaseId"] = self.phase_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuntimeStep":
        return cls(
            id=data["id"],
            type=data["type"],
            label=data.get("label", ""),
            config=dict(data.get("config") or {}),
            phase_id=data.get("phaseId"),
        )


# ---------------------------------------------------------------------------
# Parsing (camelCase JSON -> AST)
# ---------------------------------------------------------------------------


def _str_or_none(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _parse_statuses(raw: Any) -> List[StatusDefinition]:
    """Keep well-formed entries, trimmed and sorted by ``order``."""
    if not isinstance(raw, list):
        return []
    statuses = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        if not isinstance(item.get("id"), str) or not isinstance(item.get("label"), str):
            continue
        order = item.get("order")
        if isinstance(order, bool) or not isinstance(order, (int, float)):
            continue
        statuses.append(StatusDefinition(
            id=item["id"].strip(),
            label=item["label"].strip(),
            order=order,
            color=_str_or_none(item.get("color")),
        ))
    return sorted(statuses, key=lambda s: s.order)


def _parse_phases(raw: Any) -> List[Phase]:
    if not isinstance(raw, list):
        return []
    phases = []
    for index, item in enumerate(x for x in raw if isinstance(x, dict)):
        order = item.get("order")
        if isinstance(order, bool) or not isinstance(order, (int, float)):
            order = index
        phases.append(Phase(
            id=_str_or_none(item.get("id")) or f"phase_{index + 1}",
            name=_str_or_none(item.get("name")) or _str_or_none(item.get("label")) or f"Phase {index + 1}",
            order=order,
            color=item.get("color") if isinstance(item.get("color"), str) else None,
        ))
    return sorted(phases, key=lambda p: p.order)


def _parse_variables(raw: Any) -> List[WorkflowVariable]:
    if not isinstance(raw, list):
        return []
    return [
        WorkflowVariable(id=v["id"], name=v["name"], type=v["type"], source=v["source"])
        for v in raw
        if isinstance(v, dict)
        and isinstance(v.get("id"), str)
        and isinstance(v.get("name"), str)
        and isinstance(v.get("type"), str)
        and isinstance(v.get("source"), dict)
    ]


def _parse_trigger(raw: Any) -> Trigger:
    if not isinstance(raw, dict) or raw.get("type") not in TRIGGER_TYPES:
        return Trigger()
    trigger = Trigger(type=raw["type"], initial_status=_str_or_none(raw.get("initialStatus")))
    if trigger.type == "contact_status":
        trigger.status_value = raw.get("statusValue") if isinstance(raw.get("statusValue"), str) else ""
    elif trigger.type == "form_submission":
        trigger.form_id = raw.get("formId") if isinstance(raw.get("formId"), str) else ""
    return trigger


class _StepParser:
    """Collects ``invalid_shape`` issues while walking the step tree."""

    def __init__(self) -> None:
        self.issues: List[CompileIssue] = []

    def _shape(self, path: str, message: str, step_id: Optional[str] = None) -> None:
        self.issues.append(CompileIssue("invalid_shape", path, message, step_id=step_id))

    def parse_steps(self, raw: Any, path: str) -> List[Step]:
        if not isinstance(raw, list):
            self._shape(path, "Steps must be a list.")
            return []
        steps: List[Step] = []
        for index, item in enumerate(raw):
            step = self.parse_step(item, f"{path}[{index}]")
            if step is not None:
                steps.append(step)
        return steps

    def parse_step(self, raw: Any, path: str) -> Optional[Step]:
        if not isinstance(raw, dict):
            self._shape(path, "Step must be an object.")
            return None
        step_id = raw.get("id") if isinstance(raw.get("id"), str) else ""
        name = raw.get("name") if isinstance(raw.get("name"), str) else step_id
        phase_id = _str_or_none(raw.get("phaseId"))

        if raw.get("stepType") == "branch":
            cond = raw.get("condition")
            if not isinstance(cond, dict):
                self._shape(f"{path}.condition", "Branch condition is required.", step_id)
                cond = {}
            tracks = []
            raw_tracks = raw.get("tracks")
            if not isinstance(raw_tracks, list):
                self._shape(f"{path}.tracks", "Branch tracks must be a list.", step_id)
                raw_tracks = []
            for t_index, raw_track in enumerate(raw_tracks):
                t_path = f"{path}.tracks[{t_index}]"
                if not isinstance(raw_track, dict):
                    self._shape(t_path, "Track must be an object.", step_id)
                    continue
                tracks.append(Track(
                    id=str(raw_track.get("id") or f"{step_id}_track_{t_index + 1}"),
                    label=str(raw_track.get("label") or ""),
                    steps=self.parse_steps(raw_track.get("steps", []), f"{t_path}.steps"),
                ))
            return BranchStep(
                id=step_id,
                name=name,
                condition=BranchCondition(
                    variable_ref=cond.get("variableRef") if isinstance(cond.get("variableRef"), str) else "",
                    operator=str(cond.get("operator") or ""),
                    compare_value=cond.get("compareValue"),
                ),
                tracks=tracks,
                phase_id=phase_id,
            )

        raw_actions = raw.get("actions")
        raw_condition = raw.get("advancementCondition")
        if not isinstance(raw_actions, list):
            self._shape(f"{path}.actions", "Step actions must be a list.", step_id)
            raw_actions = []
        if not isinstance(raw_condition, dict) or not isinstance(raw_condition.get("type"), str):
            self._shape(f"{path}.advancementCondition", "Advancement condition is required.", step_id)
            raw_condition = {"type": "automatic"}

        actions = []
        for a_index, raw_action in enumerate(raw_actions):
            if not isinstance(raw_action, dict):
                self._shape(f"{path}.actions[{a_index}]", "Action must be an object.", step_id)
                continue
            config = raw_action.get("config")
            actions.append(Action(
                id=raw_action.get("id") if isinstance(raw_action.get("id"), str) else "",
                type=str(raw_action.get("type") or ""),
                config=config if isinstance(config, dict) else {},
            ))

        return StandardStep(
            id=step_id,
            name=name,
            actions=actions,
            advancement_condition=AdvancementCondition(
                type=raw_condition["type"],
                config=raw_condition.get("config") if isinstance(raw_condition.get("config"), dict) else {},
            ),
            phase_id=phase_id,
        )


def parse_definition(data: Dict[str, Any]) -> WorkflowDefinition:
    """Parse editor JSON into a ``WorkflowDefinition``.

    Statuses, phases and variables are normalised leniently (malformed
    entries dropped, lists sorted by ``order``). Structurally broken steps
    raise ``CompileError`` with ``invalid_shape`` issues.
    """
    if not isinstance(data, dict):
        raise CompileError([CompileIssue("invalid_shape", "", "Definition must be an object.")])

    parser = _StepParser()
    steps = parser.parse_steps(data.get("steps", []), "steps")
    if parser.issues:
        raise CompileError(parser.issues)

    contact_required = data.get("contactRequired")
    return WorkflowDefinition(
        id=str(data.get("id") or ""),
        name=str(data.get("name") or ""),
        description=data.get("description") if isinstance(data.get("description"), str) else None,
        trigger=_parse_trigger(data.get("trigger")),
        contact_required=contact_required if isinstance(contact_required, bool) else True,
        statuses=_parse_statuses(data.get("statuses")),
        variables=_parse_variables(data.get("variables")),
        phases=_parse_phases(data.get("phases")),
        steps=steps,
    )
