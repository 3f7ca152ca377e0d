"""Activity-log writer used by the task lifecycle and the execution trigger.

Audit rows ride on the caller's session. A failed write is rolled back,
logged to the audit logger and never propagated.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.notification import ActivityLogRepository
from flowcore.logging_config import get_audit_logger

logger = get_audit_logger()


class ActivityAuditLog:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = ActivityLogRepository(session)

    async def record(
        self,
        org_id: str,
        user_id: Optional[str],
        entity_type: str,
        entity_id: str,
        action: str,
        details: Dict[str, Any],
    ) -> None:
        try:
            await self.repo.add(org_id, user_id, entity_type, entity_id, action, details)
        except Exception as exc:
            await self.session.rollback()
            logger.error(f"Activity log write failed ({entity_type}/{entity_id} {action}): {exc}")
            return
        logger.info(f"{entity_type}/{entity_id} {action} by {user_id or 'system'}")
