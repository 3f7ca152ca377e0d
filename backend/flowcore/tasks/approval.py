"""Approval-comment requirement lookup in an execution's compiled-step snapshot."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


def requires_approval_comment(
    compiled_steps: Optional[Iterable[Dict[str, Any]]],
    created_by_step_id: Optional[str],
) -> bool:
    """True when the ``assign_task`` instruction that created the task has ``requireComment``."""
    if not compiled_steps or not created_by_step_id:
        return False
    for step in compiled_steps:
        if step.get("id") == created_by_step_id and step.get("type") == "assign_task":
            return bool((step.get("config") or {}).get("requireComment"))
    return False
