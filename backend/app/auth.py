"""Request actor resolution.

The upstream auth provider forwards the signed-in user as ``X-User-Id``,
``X-Org-Id`` and ``X-Org-Role`` headers. Persisted membership roles are
merged in before implied roles are applied.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.repositories.organization import OrganizationRepository
from flowcore.access.roles import AccessContext, build_access_context, role_has_permission


async def get_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_org_id: Optional[str] = Header(default=None),
    x_org_role: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> AccessContext:
    if not x_user_id or not x_org_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    membership = await OrganizationRepository(session).get_membership(x_org_id, x_user_id)
    declared_role = x_org_role or (membership.role if membership else None)
    membership_roles = list(membership.roles or []) if membership else []
    if membership and membership.role:
        membership_roles.append(membership.role)

    return build_access_context(
        user_id=x_user_id,
        org_id=x_org_id,
        declared_role=declared_role,
        membership_roles=membership_roles,
    )


def require_permission(actor: AccessContext, permission: str) -> None:
    if not role_has_permission(actor.org_role, permission):
        raise HTTPException(status_code=403, detail=f"Missing permission: {permission}")
