"""Role normalisation, access context and role -> permission table.

Roles arrive from the auth provider as e.g. ``"org:admin"`` and from the
membership table as free-form strings. Everything is normalised to bare
lower-case names before comparison.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Protocol

_ROLE_PREFIX = "org:"


class BaseOrgRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    USER = "user"
    GUEST = "guest"


def normalize_role(role: Optional[str]) -> Optional[str]:
    """Lower-case, strip the ``org:`` prefix; blank input yields None."""
    if not role:
        return None
    normalized = role.strip().lower()
    if normalized.startswith(_ROLE_PREFIX):
        normalized = normalized[len(_ROLE_PREFIX):]
    return normalized or None


def normalize_roles(roles: Iterable[Optional[str]]) -> FrozenSet[str]:
    return frozenset(r for r in (normalize_role(role) for role in roles) if r)


def is_org_admin(role: Optional[str]) -> bool:
    return normalize_role(role) in (BaseOrgRole.OWNER.value, BaseOrgRole.ADMIN.value)


def base_org_role(role: Optional[str]) -> Optional[BaseOrgRole]:
    """Strict lookup: custom roles map to None."""
    try:
        return BaseOrgRole(normalize_role(role))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Implied roles
# ---------------------------------------------------------------------------

# Applied in order, so "manager" picks up roles implied by "admin" first.
IMPLIED_ROLES: Dict[str, FrozenSet[str]] = {
    BaseOrgRole.ADMIN.value: frozenset({"manager", "reviewer", "member", "user"}),
    BaseOrgRole.MEMBER.value: frozenset({"reviewer", "user"}),
    "manager": frozenset({"reviewer"}),
}


@dataclass(frozen=True)
class AccessContext:
    user_id: str
    org_id: str
    org_role: Optional[str]
    roles: FrozenSet[str]
    has_admin_access: bool = False


def build_access_context(
    user_id: str,
    org_id: str,
    declared_role: Optional[str] = None,
    has_admin_access: bool = False,
    membership_roles: Iterable[Optional[str]] = (),
) -> AccessContext:
    """Union declared and persisted roles, then apply ``IMPLIED_ROLES``.

    The admin expansion triggers on the admin flag or a declared admin/owner
    role; the member expansion only on a declared ``member`` role.
    """
    org_role = normalize_role(declared_role)
    has_admin_access = has_admin_access or is_org_admin(org_role)

    roles = set(normalize_roles(membership_roles))
    if org_role:
        roles.add(org_role)

    if has_admin_access:
        roles |= IMPLIED_ROLES[BaseOrgRole.ADMIN.value]
    if org_role == BaseOrgRole.MEMBER.value:
        roles |= IMPLIED_ROLES[BaseOrgRole.MEMBER.value]
    if "manager" in roles:
        roles |= IMPLIED_ROLES["manager"]

    return AccessContext(
        user_id=user_id,
        org_id=org_id,
        org_role=org_role,
        roles=frozenset(roles),
        has_admin_access=has_admin_access,
    )


class TaskAccessTarget(Protocol):
    assigned_to: Optional[str]
    assigned_role: Optional[str]


def can_access_assigned_role(context: AccessContext, assigned_role: Optional[str]) -> bool:
    role = normalize_role(assigned_role)
    if not role:
        return False
    return context.has_admin_access or role in context.roles


def can_mutate_task(context: AccessContext, task: TaskAccessTarget) -> bool:
    return context.has_admin_access or task.assigned_to == context.user_id


def can_claim_task(context: AccessContext, task: TaskAccessTarget) -> bool:
    return not task.assigned_to and can_access_assigned_role(context, task.assigned_role)


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------

AUTH_PERMISSIONS = (
    "admin.access",
    "activity.read",
    "contacts.read",
    "contacts.write",
    "dashboard.read",
    "notifications.read",
    "notifications.write",
    "tasks.read",
    "tasks.write",
    "tasks.claim",
    "users.read",
    "workflow-definitions.read",
    "workflow-definitions.read_full",
    "workflow-definitions.write",
    "workflows.read",
    "workflows.write",
    "workflows.trigger",
)

_MEMBER_PERMISSIONS = frozenset({
    "activity.read",
    "contacts.read",
    "contacts.write",
    "dashboard.read",
    "notifications.read",
    "notifications.write",
    "tasks.read",
    "tasks.write",
    "tasks.claim",
    "users.read",
    "workflow-definitions.read",
    "workflows.read",
    "workflows.write",
    "workflows.trigger",
})

_GUEST_PERMISSIONS = frozenset({
    "activity.read",
    "contacts.read",
    "dashboard.read",
    "notifications.read",
    "tasks.read",
    "workflows.read",
    "workflow-definitions.read",
})

ROLE_PERMISSIONS: Dict[BaseOrgRole, FrozenSet[str]] = {
    BaseOrgRole.OWNER: frozenset(AUTH_PERMISSIONS),
    BaseOrgRole.ADMIN: frozenset(AUTH_PERMISSIONS),
    BaseOrgRole.MEMBER: _MEMBER_PERMISSIONS,
    BaseOrgRole.USER: _MEMBER_PERMISSIONS,
    BaseOrgRole.GUEST: _GUEST_PERMISSIONS,
}


def resolve_base_org_role(role: Optional[str]) -> BaseOrgRole:
    """Lenient lookup for permissions: custom roles get member defaults."""
    return base_org_role(role) or BaseOrgRole.MEMBER


def role_has_permission(role: Optional[str], permission: str) -> bool:
    return permission in ROLE_PERMISSIONS[resolve_base_org_role(role)]
