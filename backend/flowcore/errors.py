"""Domain exceptions shared by the compiler, access resolvers and task lifecycle.

Routes translate these into ``HTTPException``:

- ValidationError    -> 400
- AuthorizationError -> 403
- NotFoundError      -> 404
- ConflictError      -> 409 (carries current status / outcome)
- CompileError       -> 422 (carries the issue list)
- IntegrationError   -> logged; 503 only for a failed execution start
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional


class WorkflowCoreError(Exception):
    """Base class for all flowcore errors."""


class ValidationError(WorkflowCoreError):
    """Malformed or missing input. Raised before any mutation."""


class AuthorizationError(WorkflowCoreError):
    """Actor lacks the required role or ownership."""


class NotFoundError(WorkflowCoreError):
    """Target row does not exist (or is outside the actor's organization)."""


class ConflictError(WorkflowCoreError):
    """Optimistic-concurrency loser.

    ``status`` / ``outcome`` describe the state that won the race so the
    caller can decide whether to retry or accept.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[str] = None,
        outcome: Optional[str] = None,
        assigned_to: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.outcome = outcome
        self.assigned_to = assigned_to

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"error": self.message}
        if self.status is not None:
            data["status"] = self.status
        if self.outcome is not None:
            data["outcome"] = self.outcome
        if self.assigned_to is not None:
            data["assignedTo"] = self.assigned_to
        return data


class IntegrationError(WorkflowCoreError):
    """External dependency (Temporal, notification store) failed."""


@dataclass
class CompileIssue:
    code: str
    path: str
    message: str
    step_id: Optional[str] = None
    action_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class CompileError(WorkflowCoreError):
    """Authored definition cannot be lowered. No partial output is produced."""

    def __init__(self, issues: List[CompileIssue]) -> None:
        self.issues = list(issues)
        summary = "; ".join(issue.message for issue in self.issues[:3])
        super().__init__(f"Authoring validation failed: {summary}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "Authoring validation failed",
            "issues": [issue.to_dict() for issue in self.issues],
        }
