"""Notification recipient resolution over organization members.

Pure: the caller loads the member list (see ``app.notifications``).
No match yields an empty list, which callers treat as a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from flowcore.access.roles import normalize_role, normalize_roles

RECIPIENT_TYPES = ("organization", "user", "role", "groups")


@dataclass(frozen=True)
class OrgMember:
    user_id: str
    email: str = ""
    role: Optional[str] = None
    roles: FrozenSet[str] = frozenset()

    @property
    def role_set(self) -> FrozenSet[str]:
        return normalize_roles([self.role, *self.roles])


@dataclass(frozen=True)
class RecipientSpec:
    type: str
    user: Optional[str] = None
    role: Optional[str] = None
    groups: List[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RecipientSpec":
        """Build from a compiled ``notification`` instruction's ``recipients``."""
        kind = config.get("type")
        if kind == "user":
            return cls(type="user", user=config.get("userId") or "")
        if kind == "role":
            return cls(type="role", role=config.get("role") or "")
        if kind in ("group", "groups"):
            return cls(type="groups", groups=list(config.get("groupIds") or config.get("groups") or []))
        return cls(type="organization")


def resolve_recipients(members: Iterable[OrgMember], spec: RecipientSpec) -> List[str]:
    """Return matching user ids in member order."""
    members = list(members)

    if spec.type == "organization":
        return [m.user_id for m in members]

    if spec.type == "user":
        value = (spec.user or "").strip()
        if not value:
            return []
        if "@" in value:
            lower = value.lower()
            return [m.user_id for m in members if m.email.lower() == lower]
        return [m.user_id for m in members if m.user_id == value]

    if spec.type == "role":
        target = normalize_role(spec.role)
        if not target:
            return []
        return [m.user_id for m in members if target in m.role_set]

    targets = normalize_roles(spec.groups)
    if not targets:
        return []
    return [m.user_id for m in members if m.role_set & targets]
