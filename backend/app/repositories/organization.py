"""Repository layer for organization-scoped settings.

Covers memberships, contact field visibility overrides and the email
sender allowlist.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import (
    EmailSenderSettingsModel,
    FieldVisibilityPolicyModel,
    OrganizationMembershipModel,
)
from flowcore.access.field_visibility import FieldPolicy
from flowcore.access.recipients import OrgMember
from flowcore.email_senders import normalize_allowed_from_emails, sanitize_allowed_from_emails


class OrganizationRepository:
    """Read/write access to per-organization configuration."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── memberships ─────────────────────────────────────────────────────

    async def add_member(
        self,
        org_id: str,
        user_id: str,
        email: str = "",
        role: Optional[str] = None,
        roles: Optional[List[str]] = None,
    ) -> OrganizationMembershipModel:
        membership = OrganizationMembershipModel(
            org_id=org_id, user_id=user_id, email=email, role=role, roles=roles or [],
        )
        self.session.add(membership)
        await self.session.flush()
        return membership

    async def get_membership(self, org_id: str, user_id: str) -> Optional[OrganizationMembershipModel]:
        result = await self.session.execute(
            select(OrganizationMembershipModel).where(
                OrganizationMembershipModel.org_id == org_id,
                OrganizationMembershipModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_members(self, org_id: str) -> List[OrgMember]:
        result = await self.session.execute(
            select(OrganizationMembershipModel)
            .where(OrganizationMembershipModel.org_id == org_id)
            .order_by(OrganizationMembershipModel.created_at)
        )
        return [
            OrgMember(
                user_id=row.user_id,
                email=row.email or "",
                role=row.role,
                roles=frozenset(row.roles or ()),
            )
            for row in result.scalars().all()
        ]

    # ── field visibility ────────────────────────────────────────────────

    async def add_field_policy(
        self, org_id: str, role_key: str, field_key: str, can_read: bool, can_write: bool,
    ) -> FieldVisibilityPolicyModel:
        policy = FieldVisibilityPolicyModel(
            org_id=org_id,
            entity_type="contact",
            role_key=role_key,
            field_key=field_key,
            can_read=can_read,
            can_write=can_write,
        )
        self.session.add(policy)
        await self.session.flush()
        return policy

    async def contact_field_policies(self, org_id: str) -> List[FieldPolicy]:
        result = await self.session.execute(
            select(FieldVisibilityPolicyModel).where(
                FieldVisibilityPolicyModel.org_id == org_id,
                FieldVisibilityPolicyModel.entity_type == "contact",
            )
        )
        return [
            FieldPolicy(
                role_key=row.role_key,
                field_key=row.field_key,
                can_read=row.can_read,
                can_write=row.can_write,
            )
            for row in result.scalars().all()
        ]

    # ── email sender allowlist ──────────────────────────────────────────

    async def allowed_from_emails(self, org_id: str) -> List[str]:
        row = await self.session.get(EmailSenderSettingsModel, org_id)
        if row is None:
            return []
        return sanitize_allowed_from_emails(row.allowed_from_emails)

    async def set_allowed_from_emails(self, org_id: str, emails: object) -> List[str]:
        """Validate and store the allowlist; raises ``ValidationError`` on bad input."""
        normalized = normalize_allowed_from_emails(emails)
        row = await self.session.get(EmailSenderSettingsModel, org_id)
        if row is None:
            row = EmailSenderSettingsModel(org_id=org_id, allowed_from_emails=normalized)
            self.session.add(row)
        else:
            row.allowed_from_emails = normalized
        await self.session.flush()
        return normalized
