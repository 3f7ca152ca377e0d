"""Organization settings endpoints (email sender allowlist)."""

from __future__ import annotations

from typing import Any, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_actor, require_permission
from app.database import get_session
from app.repositories.organization import OrganizationRepository
from flowcore.access.roles import AccessContext
from flowcore.errors import WorkflowCoreError

from .common import http_error

router = APIRouter(prefix="/api/v2/settings", tags=["settings"])


class EmailSendersRequest(BaseModel):
    allowed_from_emails: Any = None


class EmailSendersResponse(BaseModel):
    allowed_from_emails: List[str]


@router.get("/email-senders", response_model=EmailSendersResponse)
async def get_email_senders(
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    require_permission(actor, "admin.access")
    emails = await OrganizationRepository(session).allowed_from_emails(actor.org_id)
    return EmailSendersResponse(allowed_from_emails=emails)


@router.put("/email-senders", response_model=EmailSendersResponse)
async def update_email_senders(
    payload: EmailSendersRequest,
    actor: AccessContext = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    require_permission(actor, "admin.access")
    try:
        emails = await OrganizationRepository(session).set_allowed_from_emails(
            actor.org_id, payload.allowed_from_emails,
        )
    except WorkflowCoreError as e:
        raise http_error(e)
    return EmailSendersResponse(allowed_from_emails=emails)
