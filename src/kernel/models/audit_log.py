"""
Append-only audit log.

Rows are never deleted by the application. The only permitted update is
filling a null user_id inside the backfill grace window.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, func, Index, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, generate_uuid, utcnow


class AuditAction(str, Enum):
    """Every action that can appear in the audit trail."""

    # Tasks
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_MOVED = "task_moved"
    TASK_REORDERED = "task_reordered"
    TASK_PRIORITY_CHANGED = "task_priority_changed"
    TASK_ASSIGNED = "task_assigned"
    TASK_UNASSIGNED = "task_unassigned"
    TASK_DELETED = "task_deleted"

    # Columns
    COLUMN_CREATED = "column_created"
    COLUMN_RENAMED = "column_renamed"
    COLUMN_UPDATED = "column_updated"
    COLUMN_MOVED = "column_moved"
    COLUMN_DELETED = "column_deleted"

    # Comments
    COMMENT_ADDED = "comment_added"
    COMMENT_UPDATED = "comment_updated"
    COMMENT_DELETED = "comment_deleted"

    # Membership
    MEMBER_ADDED = "member_added"
    MEMBER_ROLE_CHANGED = "member_role_changed"
    MEMBER_REMOVED = "member_removed"

    # Invitations
    INVITATION_SENT = "invitation_sent"
    INVITATION_ACCEPTED = "invitation_accepted"
    INVITATION_REJECTED = "invitation_rejected"
    INVITATION_EXPIRED = "invitation_expired"
    INVITATION_CANCELLED = "invitation_cancelled"

    # Task collaborators
    COLLABORATOR_ADDED = "collaborator_added"
    COLLABORATOR_REMOVED = "collaborator_removed"

    # Projects
    PROJECT_CREATED = "project_created"
    PROJECT_RENAMED = "project_renamed"
    PROJECT_UPDATED = "project_updated"
    PROJECT_DELETED = "project_deleted"


class EntityType(str, Enum):
    """Kinds of entity an audit row can point at."""
    PROJECT = "project"
    COLUMN = "column"
    TASK = "task"
    COMMENT = "comment"
    MEMBER = "member"
    INVITATION = "invitation"
    TASK_COLLABORATOR = "task_collaborator"


# Prefix -> category, used by the action catalogue
ACTION_CATEGORIES = {
    "tasks": "task_",
    "members": "member_",
    "invitations": "invitation_",
    "collaborators": "collaborator_",
    "columns": "column_",
    "projects": "project_",
}


class AuditLog(Base):
    """
    Immutable audit record.

    user_id may be null when the actor was not known at append time.
    correlation_id carries the request id of the mutation that produced it.
    """

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )

    # Actor
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )

    action: Mapped[AuditAction] = mapped_column(
        String(50),
        nullable=False,
    )
    entity_type: Mapped[EntityType] = mapped_column(
        String(50),
        nullable=False,
    )
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )

    # Opaque, action-specific payload
    details: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    correlation_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    # Timestamp (immutable)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_audit_logs_project_action", "project_id", "action"),
        Index("ix_audit_logs_project_created", "project_id", "created_at"),
        Index("ix_audit_logs_entity", "project_id", "entity_type", "entity_id"),
        Index("ix_audit_logs_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"
