"""In-app notification delivery.

``task_assigned`` backs the task lifecycle's assignment notifier;
``notify_recipients`` backs the workflow ``notification`` instruction.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.notification import NotificationRepository
from app.repositories.organization import OrganizationRepository
from flowcore.access.recipients import RecipientSpec, resolve_recipients
from flowcore.settings import NOTIFICATION_DEFAULT_MESSAGE, NOTIFICATION_DEFAULT_TITLE

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.notifications = NotificationRepository(session)
        self.organizations = OrganizationRepository(session)

    async def task_assigned(
        self,
        org_id: str,
        user_id: str,
        task_id: str,
        task_title: str,
        assigned_by: Optional[str],
    ) -> None:
        if assigned_by and assigned_by == user_id:
            return
        await self.notifications.create(
            org_id=org_id,
            user_id=user_id,
            type="task_assigned",
            title="New task assigned",
            message=f'You were assigned "{task_title}"',
            entity_type="task",
            entity_id=task_id,
            details={"assignedBy": assigned_by},
        )
        logger.info(f"Notified {user_id} of task {task_id} assignment")

    async def notify_recipients(
        self,
        org_id: str,
        recipients: Dict[str, Any],
        title: Optional[str] = None,
        message: Optional[str] = None,
        execution_id: Optional[str] = None,
    ) -> List[str]:
        """Create one notification per resolved user. Returns the notified user ids.

        Nobody matching is not an error: nothing is written.
        """
        members = await self.organizations.list_members(org_id)
        user_ids = resolve_recipients(members, RecipientSpec.from_config(recipients or {}))

        notified: List[str] = []
        for user_id in user_ids:
            if user_id in notified:
                continue
            await self.notifications.create(
                org_id=org_id,
                user_id=user_id,
                type="workflow_notification",
                title=(title or "").strip() or NOTIFICATION_DEFAULT_TITLE,
                message=(message or "").strip() or NOTIFICATION_DEFAULT_MESSAGE,
                entity_type="workflow_execution" if execution_id else None,
                entity_id=execution_id,
            )
            notified.append(user_id)

        if not notified:
            logger.info(f"Notification for org {org_id} matched no recipients: {recipients}")
        return notified
