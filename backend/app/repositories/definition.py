"""Repository layer for workflow definitions."""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import WorkflowDefinitionModel


class DefinitionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: str, definition: Dict[str, Any]) -> WorkflowDefinitionModel:
        """Persist an authoring definition in editor JSON shape."""
        model = WorkflowDefinitionModel(
            org_id=org_id,
            name=definition.get("name") or "Untitled workflow",
            description=definition.get("description"),
            trigger=definition.get("trigger") or {"type": "manual"},
            contact_required=definition.get("contactRequired", True) is not False,
            statuses=definition.get("statuses") or [],
            phases=definition.get("phases") or [],
            variables=definition.get("variables") or [],
            steps=definition.get("steps") or [],
        )
        if definition.get("id"):
            model.id = definition["id"]
        self.session.add(model)
        await self.session.flush()
        return model

    async def get(self, definition_id: str, org_id: str) -> Optional[WorkflowDefinitionModel]:
        result = await self.session.execute(
            select(WorkflowDefinitionModel).where(
                WorkflowDefinitionModel.id == definition_id,
                WorkflowDefinitionModel.org_id == org_id,
            )
        )
        return result.scalar_one_or_none()
