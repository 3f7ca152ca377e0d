"""Contact field visibility: per-role readable/writable field sets.

Defaults come from ``DEFAULT_READ_FIELDS`` / ``DEFAULT_WRITE_FIELDS`` keyed by
base org role. Organization policies (one row per role + field) override the
default for that role and field. Custom roles without a policy row get nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from flowcore.access.roles import BaseOrgRole, base_org_role, normalize_role

logger = logging.getLogger(__name__)

CONTACT_FIELDS: Tuple[str, ...] = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "company",
    "role",
    "status",
    "avatar_url",
    "last_contacted_at",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip",
    "tags",
    "metadata",
)

_ALL_FIELDS = frozenset(CONTACT_FIELDS)

_GUEST_READ_FIELDS = frozenset({
    "first_name",
    "last_name",
    "company",
    "role",
    "status",
    "avatar_url",
    "tags",
})

DEFAULT_READ_FIELDS: Dict[BaseOrgRole, FrozenSet[str]] = {
    BaseOrgRole.OWNER: _ALL_FIELDS,
    BaseOrgRole.ADMIN: _ALL_FIELDS,
    BaseOrgRole.MEMBER: _ALL_FIELDS,
    BaseOrgRole.USER: _ALL_FIELDS,
    BaseOrgRole.GUEST: _GUEST_READ_FIELDS,
}

DEFAULT_WRITE_FIELDS: Dict[BaseOrgRole, FrozenSet[str]] = {
    BaseOrgRole.OWNER: _ALL_FIELDS,
    BaseOrgRole.ADMIN: _ALL_FIELDS,
    BaseOrgRole.MEMBER: _ALL_FIELDS,
    BaseOrgRole.USER: _ALL_FIELDS,
    BaseOrgRole.GUEST: frozenset(),
}


@dataclass(frozen=True)
class FieldPolicy:
    """One organization override row."""

    role_key: str
    field_key: str
    can_read: bool
    can_write: bool


@dataclass
class ContactFieldAccess:
    readable: Set[str] = field(default_factory=set)
    writable: Set[str] = field(default_factory=set)


def _policy_map(policies: Iterable[FieldPolicy]) -> Dict[str, Dict[str, Tuple[bool, bool]]]:
    """role -> field -> (can_read, can_write). Write implies read."""
    result: Dict[str, Dict[str, Tuple[bool, bool]]] = {}
    for policy in policies:
        role = normalize_role(policy.role_key)
        if not role or policy.field_key not in _ALL_FIELDS:
            logger.debug(f"Ignoring field policy {policy.role_key}/{policy.field_key}")
            continue
        result.setdefault(role, {})[policy.field_key] = (
            policy.can_read,
            policy.can_read and policy.can_write,
        )
    return result


def resolve_contact_field_access(
    role_keys: Iterable[Optional[str]],
    policies: Iterable[FieldPolicy] = (),
) -> ContactFieldAccess:
    """Union of readable/writable fields over every role the actor holds."""
    access = ContactFieldAccess()
    roles = {r for r in (normalize_role(k) for k in role_keys) if r}
    if not roles:
        return access

    overrides_by_role = _policy_map(policies)
    for role in roles:
        base = base_org_role(role)
        default_read = DEFAULT_READ_FIELDS[base] if base else frozenset()
        default_write = DEFAULT_WRITE_FIELDS[base] if base else frozenset()
        overrides = overrides_by_role.get(role, {})

        for field_key in CONTACT_FIELDS:
            if field_key in overrides:
                can_read, can_write = overrides[field_key]
            else:
                can_read, can_write = field_key in default_read, field_key in default_write
            if can_read:
                access.readable.add(field_key)
            if can_write:
                access.writable.add(field_key)
    return access


def redact_for_read(record: Mapping[str, Any], readable: Iterable[str]) -> Dict[str, Any]:
    """Null every unreadable contact field; keys are kept, other keys untouched."""
    readable = set(readable)
    redacted = dict(record)
    for field_key in CONTACT_FIELDS:
        if field_key in redacted and field_key not in readable:
            redacted[field_key] = None
    return redacted


def find_forbidden_write_fields(payload: Mapping[str, Any], writable: Iterable[str]) -> List[str]:
    """Contact fields present in ``payload`` that the actor may not write."""
    writable = set(writable)
    return [f for f in CONTACT_FIELDS if f in payload and f not in writable]
