"""Deterministic helpers used by ``GenericWorkflow`` to walk a compiled program.

No I/O here: everything runs inside the Temporal workflow sandbox.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from flowcore.authoring.templates import build_custom_variable_keys, render
from flowcore.authoring.models import WorkflowVariable

# Contact columns exposed under camelCase aliases as well (authored templates use both)
_CONTACT_ALIASES = {
    "first_name": "firstName",
    "last_name": "lastName",
    "avatar_url": "avatarUrl",
}


def build_goto_table(steps: List[Dict[str, Any]]) -> Dict[str, int]:
    """Instruction id -> index."""
    return {step["id"]: index for index, step in enumerate(steps)}


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return ""


def initial_variables(
    contact: Optional[Dict[str, Any]],
    custom_variables: Iterable[Dict[str, Any]] = (),
    workflow_meta: Optional[Dict[str, Any]] = None,
) -> Dict[str, str]:
    """Seed the flat variable map: ``contact.*``, ``custom.*`` and ``workflow.*``.

    Custom variables are stored under both ``custom.<id>`` and the friendly
    ``custom.<key>`` produced at compile time.
    """
    variables: Dict[str, str] = {}
    for key, value in (contact or {}).items():
        variables[f"contact.{key}"] = _as_text(value)
        if key in _CONTACT_ALIASES:
            variables[f"contact.{_CONTACT_ALIASES[key]}"] = _as_text(value)

    declared = [
        WorkflowVariable(id=v["id"], name=v["name"], type=v.get("type", "custom"), source=v.get("source") or {})
        for v in custom_variables
        if isinstance(v, dict) and isinstance(v.get("id"), str) and isinstance(v.get("name"), str)
    ]
    keys = build_custom_variable_keys(declared)
    for variable in declared:
        if not variable.is_custom:
            continue
        value = _as_text(variable.source.get("value"))
        variables[f"custom.{variable.id}"] = value
        variables[f"custom.{keys[variable.id]}"] = value

    for key, value in (workflow_meta or {}).items():
        variables[f"workflow.{key}"] = _as_text(value)
    return variables


def condition_target(config: Dict[str, Any], variables: Dict[str, str]) -> Optional[str]:
    """First branch whose value equals the rendered field, else the default (may be None)."""
    field_value = render(config.get("field"), variables)
    for branch in config.get("branches") or []:
        if branch.get("value") == field_value:
            return branch.get("gotoStepId")
    return config.get("defaultGotoStepId")


def next_index(
    step: Dict[str, Any],
    index: int,
    goto_table: Dict[str, int],
    variables: Dict[str, str],
) -> int:
    """Index of the instruction to run after ``step``.

    Conditions jump when their target resolves; everything else falls through.
    """
    if step.get("type") == "condition":
        target = condition_target(step.get("config") or {}, variables)
        if target is not None and target in goto_table:
            return goto_table[target]
    return index + 1


def render_recipients(recipients: Dict[str, Any], variables: Dict[str, str]) -> Dict[str, Any]:
    kind = recipients.get("type")
    if kind == "user":
        return {"type": "user", "userId": render(recipients.get("userId"), variables)}
    if kind == "role":
        return {"type": "role", "role": render(recipients.get("role"), variables)}
    if kind in ("group", "groups"):
        return {"type": "group", "groupIds": [render(g, variables) for g in recipients.get("groupIds") or []]}
    return {"type": "organization"}


def system_status(name: str, statuses: List[str]) -> Optional[str]:
    """``name`` if the definition declares it (or declares no statuses at all)."""
    if not statuses:
        return name
    return name if name in statuses else None
