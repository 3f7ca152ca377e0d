"""Start a GenericWorkflow execution for a stored definition.

The execution row (with its compiled-step snapshot) is committed before the
Temporal start. If the start fails the row is compensated so it never stays
``running`` without a workflow behind it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app import temporal_adapter
from app.audit import ActivityAuditLog
from app.models.db import ContactModel, WorkflowExecutionModel
from app.repositories.contact import ContactRepository
from app.repositories.definition import DefinitionRepository
from app.repositories.execution import ExecutionRepository
from flowcore.access.roles import AccessContext
from flowcore.authoring import WorkflowDefinition, compile_to_payload, parse_definition
from flowcore.errors import IntegrationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Used when a definition declares no statuses at all
FALLBACK_INITIAL_STATUS = "running"


def resolve_initial_status(definition: WorkflowDefinition) -> str:
    """Trigger's initial status, else the lowest-order declared status."""
    if definition.trigger.initial_status:
        return definition.trigger.initial_status
    if definition.statuses:
        return min(definition.statuses, key=lambda s: s.order).id
    return FALLBACK_INITIAL_STATUS


def _contact_payload(contact: Optional[ContactModel]) -> Dict[str, Any]:
    if contact is None:
        return {}
    return {
        key: value
        for key, value in contact.to_dict().items()
        if key not in ("org_id", "created_at", "updated_at", "metadata")
    }


@dataclass
class TriggerResult:
    execution: WorkflowExecutionModel
    compiled_steps: List[Dict[str, Any]]


class ExecutionTrigger:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.definitions = DefinitionRepository(session)
        self.contacts = ContactRepository(session)
        self.executions = ExecutionRepository(session)
        self.audit = ActivityAuditLog(session)

    async def trigger(
        self,
        definition_id: str,
        actor: AccessContext,
        contact_id: Optional[str] = None,
    ) -> TriggerResult:
        """Compile, persist and start one execution.

        Raises:
            NotFoundError: definition or contact missing in the actor's org
            ValidationError: contact required but not given
            CompileError: definition does not compile
            IntegrationError: Temporal start failed (row compensated)
        """
        record = await self.definitions.get(definition_id, actor.org_id)
        if record is None:
            raise NotFoundError("Workflow definition not found")

        definition = parse_definition(record.to_authoring_dict())
        compiled_steps = compile_to_payload(definition)

        contact = None
        if contact_id:
            contact = await self.contacts.get(contact_id, actor.org_id)
            if contact is None:
                raise NotFoundError("Contact not found")
        elif definition.contact_required:
            raise ValidationError("contact_id is required for this workflow")

        initial_status = resolve_initial_status(definition)
        execution = await self.executions.create(
            org_id=actor.org_id,
            workflow_definition_id=record.id,
            status=initial_status,
            compiled_steps=compiled_steps,
            definition_version=record.version,
            contact_id=contact.id if contact else None,
            started_by=actor.user_id,
        )
        await self.session.commit()

        await self.audit.record(
            actor.org_id, actor.user_id, "workflow", execution.id, "created",
            {"definitionName": record.name, "contactId": execution.contact_id, "source": "trigger_api"},
        )

        params = {
            "workflow_execution_id": execution.id,
            "org_id": actor.org_id,
            "contact": _contact_payload(contact),
            "steps": compiled_steps,
            "statuses": [s.id for s in definition.statuses],
            "variables": record.variables or [],
            "workflow": {
                "id": record.id,
                "name": record.name,
                "executionId": execution.id,
            },
            "initial_status": initial_status,
        }

        try:
            handle = await temporal_adapter.start_generic_workflow(execution.id, params)
        except Exception as exc:
            logger.error(f"Failed to start workflow for execution {execution.id}: {exc}")
            await self._compensate(execution, definition, initial_status, str(exc))
            raise IntegrationError(f"Failed to start workflow: {exc}") from exc

        await self.executions.set_temporal_ids(
            execution.id, actor.org_id, handle.id, handle.first_execution_run_id,
        )
        await self.session.commit()
        return TriggerResult(execution=execution, compiled_steps=compiled_steps)

    async def _compensate(
        self,
        execution: WorkflowExecutionModel,
        definition: WorkflowDefinition,
        initial_status: str,
        error: str,
    ) -> None:
        declared = {s.id for s in definition.statuses}
        failed_status = "failed" if "failed" in declared else initial_status
        try:
            await self.executions.update_state(
                execution.id,
                execution.org_id,
                status=failed_status,
                execution_state="error",
                completed=True,
                details={"triggerError": error},
            )
            await self.session.commit()
        except Exception as comp_exc:
            await self.session.rollback()
            logger.error(f"Failed to compensate execution {execution.id}: {comp_exc}")
