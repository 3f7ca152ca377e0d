"""Repository layer for in-app notifications and the activity log."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import ActivityLogModel, NotificationModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        org_id: str,
        user_id: str,
        type: str,
        title: str,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> NotificationModel:
        notification = NotificationModel(
            org_id=org_id,
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def list_for_user(self, org_id: str, user_id: str, unread_only: bool = False) -> List[NotificationModel]:
        query = select(NotificationModel).where(
            NotificationModel.org_id == org_id,
            NotificationModel.user_id == user_id,
        )
        if unread_only:
            query = query.where(NotificationModel.is_read.is_(False))
        result = await self.session.execute(query.order_by(NotificationModel.created_at.desc()))
        return list(result.scalars().all())

    async def mark_read(self, notification_id: str, org_id: str, user_id: str) -> Optional[NotificationModel]:
        result = await self.session.execute(
            select(NotificationModel).where(
                NotificationModel.id == notification_id,
                NotificationModel.org_id == org_id,
                NotificationModel.user_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if not notification:
            return None
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = _utcnow()
            await self.session.flush()
        return notification


class ActivityLogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(
        self,
        org_id: str,
        user_id: Optional[str],
        entity_type: str,
        entity_id: str,
        action: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActivityLogModel:
        entry = ActivityLogModel(
            org_id=org_id,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            details=details,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_for_entity(self, org_id: str, entity_type: str, entity_id: str) -> List[ActivityLogModel]:
        result = await self.session.execute(
            select(ActivityLogModel)
            .where(
                ActivityLogModel.org_id == org_id,
                ActivityLogModel.entity_type == entity_type,
                ActivityLogModel.entity_id == entity_id,
            )
            .order_by(ActivityLogModel.created_at)
        )
        return list(result.scalars().all())
