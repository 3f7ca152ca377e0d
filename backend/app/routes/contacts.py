"""Contact API endpoints with per-role field visibility."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.audit import ActivityAuditLog
from app.auth import get_actor, require_permission
from app.database import get_session
from app.repositories.contact import ContactRepository
from app.repositories.organization import OrganizationRepository
from flowcore.access.field_visibility import (
    CONTACT_FIELDS,
    ContactFieldAccess,
    find_forbidden_write_fields,
    redact_for_read,
    resolve_contact_field_access,
)
from flowcore.access.roles import AccessContext
from flowcore.errors import WorkflowCoreError

from .common import http_error

router = APIRouter(prefix="/api/v2/contacts", tags=["contacts"])


async def _field_access(session: AsyncSession, actor: AccessContext) -> ContactFieldAccess:
    policies = await OrganizationRepository(session).contact_field_policies(actor.org_id)
    return resolve_contact_field_access([actor.org_role, *actor.roles], policies)


@router.get("/{contact_id}")
async def get_contact(
    contact_id: str,
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    require_permission(actor, "contacts.read")
    contact = await ContactRepository(session).get(contact_id, actor.org_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")

    access = await _field_access(session, actor)
    return redact_for_read(contact.to_dict(), access.readable)


@router.patch("/{contact_id}")
async def update_contact(
    contact_id: str,
    payload: Dict[str, Any] = Body(...),
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    """Update contact fields; any field the actor cannot write rejects the whole request."""
    require_permission(actor, "contacts.write")

    unknown = sorted(set(payload) - set(CONTACT_FIELDS))
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unsupported contact field(s): {', '.join(unknown)}")

    access = await _field_access(session, actor)
    forbidden = find_forbidden_write_fields(payload, access.writable)
    if forbidden:
        raise HTTPException(
            status_code=403,
            detail={"error": "Forbidden contact field(s)", "fields": forbidden},
        )

    try:
        contact = await ContactRepository(session).update_fields(contact_id, actor.org_id, payload)
    except WorkflowCoreError as e:
        raise http_error(e)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")

    await ActivityAuditLog(session).record(
        actor.org_id, actor.user_id, "contact", contact_id, "updated", {"fields": sorted(payload)},
    )
    return redact_for_read(contact.to_dict(), access.readable)
