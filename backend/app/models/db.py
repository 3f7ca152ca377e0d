"""SQLAlchemy ORM models for the CRM workflow service.

Tables:
- organization_memberships: Users and their org roles
- contacts: CRM contacts (field visibility applies)
- workflow_definitions: Authoring definitions, versioned on save
- workflow_executions: One row per started execution, with compiled-step snapshot
- tasks: Human tasks created by executions
- organization_field_visibility_policies: Per-role contact field overrides
- organization_email_settings: Sender allowlist
- notifications: In-app notifications
- activity_log: Audit trail
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _gen_uuid() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ─── Organization Membership ─────────────────────────────────────────


class OrganizationMembershipModel(Base):
    """A user's membership in an organization.

    ``role`` is the primary org role; ``roles`` holds extra workflow roles
    (e.g. "manager", "reviewer") used for task assignment.
    """

    __tablename__ = "organization_memberships"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    role: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    roles: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    __table_args__ = (
        UniqueConstraint("org_id", "user_id", name="uq_membership_org_user"),
        Index("ix_membership_org_id", "org_id"),
    )


# ─── Contact ─────────────────────────────────────────────────────────


class ContactModel(Base):
    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_contacted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    address_line1: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address_line2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    zip: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    tags: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    # "metadata" is reserved on declarative classes
    contact_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    __table_args__ = (
        Index("ix_contacts_org_id", "org_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "role": self.role,
            "status": self.status,
            "avatar_url": self.avatar_url,
            "last_contacted_at": _iso(self.last_contacted_at),
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "tags": self.tags or [],
            "metadata": self.contact_metadata or {},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# ─── Workflow Definition ─────────────────────────────────────────────


class WorkflowDefinitionModel(Base):
    """Authoring definition as saved by the editor.

    ``version`` increments on every save; executions snapshot the compiled
    steps so later edits never affect a running execution.
    """

    __tablename__ = "workflow_definitions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    trigger: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON, nullable=True, comment="{type, initialStatus?, statusValue?, formId?}",
    )
    contact_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    statuses: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    phases: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    variables: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    steps: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    __table_args__ = (
        Index("ix_definitions_org_id", "org_id"),
    )

    def to_authoring_dict(self) -> Dict[str, Any]:
        """Editor JSON shape consumed by ``flowcore.authoring.parse_definition``."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "trigger": self.trigger or {"type": "manual"},
            "contactRequired": self.contact_required,
            "statuses": self.statuses or [],
            "phases": self.phases or [],
            "variables": self.variables or [],
            "steps": self.steps or [],
        }


# ─── Workflow Execution ──────────────────────────────────────────────


class WorkflowExecutionModel(Base):
    __tablename__ = "workflow_executions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    workflow_definition_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("workflow_definitions.id", ondelete="CASCADE"), nullable=False,
    )
    definition_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    contact_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="Business status (one of the definition's statuses)",
    )
    execution_state: Mapped[str] = mapped_column(
        String(32), nullable=False, default="running",
        comment="running | completed | timeout | error",
    )
    compiled_steps: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(
        JSON, nullable=True, comment="RuntimeStep snapshot taken at start",
    )
    current_step_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    started_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Temporal integration
    temporal_workflow_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Temporal workflow execution ID",
    )
    temporal_run_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Temporal run ID",
    )

    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True, comment="triggerError, errorDefinition, ...",
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    __table_args__ = (
        Index("ix_executions_org_id", "org_id"),
        Index("ix_executions_definition_id", "workflow_definition_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "workflow_definition_id": self.workflow_definition_id,
            "definition_version": self.definition_version,
            "contact_id": self.contact_id,
            "status": self.status,
            "execution_state": self.execution_state,
            "current_step_id": self.current_step_id,
            "temporal_workflow_id": self.temporal_workflow_id,
            "temporal_run_id": self.temporal_run_id,
            "metadata": self.details or {},
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
        }


# ─── Task ────────────────────────────────────────────────────────────


class TaskModel(Base):
    """Human task. ``outcome`` is set iff status=done and task_type=approval."""

    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    workflow_execution_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("workflow_executions.id", ondelete="SET NULL"), nullable=True,
    )
    contact_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_by_step_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="assign_task instruction id",
    )
    assigned_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    assigned_role: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    task_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default="standard", comment="standard | approval",
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="todo",
        comment="backlog | todo | in_progress | done",
    )
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")
    outcome: Mapped[Optional[str]] = mapped_column(
        String(16), nullable=True, comment="approved | rejected",
    )
    outcome_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    task_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    __table_args__ = (
        Index("ix_tasks_org_id", "org_id"),
        Index("ix_tasks_execution_id", "workflow_execution_id"),
        Index("ix_tasks_assigned_to", "assigned_to"),
    )


# ─── Organization settings ───────────────────────────────────────────


class FieldVisibilityPolicyModel(Base):
    __tablename__ = "organization_field_visibility_policies"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False, default="contact")
    field_key: Mapped[str] = mapped_column(String(64), nullable=False)
    role_key: Mapped[str] = mapped_column(String(64), nullable=False)
    can_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    can_write: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("org_id", "entity_type", "field_key", "role_key", name="uq_field_policy"),
    )


class EmailSenderSettingsModel(Base):
    __tablename__ = "organization_email_settings"

    org_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    allowed_from_emails: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )


# ─── Notifications / Audit ───────────────────────────────────────────


class NotificationModel(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="task_assigned | workflow_notification",
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    __table_args__ = (
        Index("ix_notifications_org_user", "org_id", "user_id"),
    )


class ActivityLogModel(Base):
    __tablename__ = "activity_log"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    __table_args__ = (
        Index("ix_activity_org_entity", "org_id", "entity_type", "entity_id"),
    )
