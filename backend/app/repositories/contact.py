"""Repository layer for CRM contacts."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import ContactModel
from flowcore.errors import ValidationError

# API field name -> ORM attribute, where they differ
_ATTRIBUTE_NAMES = {"metadata": "contact_metadata"}
_DATETIME_FIELDS = ("last_contacted_at",)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _assign(contact: ContactModel, key: str, value: Any) -> None:
    if key in _DATETIME_FIELDS and isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00")) if value.strip() else None
        except ValueError:
            raise ValidationError(f"Invalid {key}: {value}")
    setattr(contact, _ATTRIBUTE_NAMES.get(key, key), value)


class ContactRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: str, **fields: Any) -> ContactModel:
        contact = ContactModel(org_id=org_id)
        for key, value in fields.items():
            _assign(contact, key, value)
        self.session.add(contact)
        await self.session.flush()
        return contact

    async def get(self, contact_id: str, org_id: str) -> Optional[ContactModel]:
        result = await self.session.execute(
            select(ContactModel).where(
                ContactModel.id == contact_id,
                ContactModel.org_id == org_id,
            )
        )
        return result.scalar_one_or_none()

    async def update_fields(self, contact_id: str, org_id: str, fields: Dict[str, Any]) -> Optional[ContactModel]:
        contact = await self.get(contact_id, org_id)
        if not contact:
            return None
        for key, value in fields.items():
            _assign(contact, key, value)
        contact.updated_at = _utcnow()
        await self.session.flush()
        return contact
