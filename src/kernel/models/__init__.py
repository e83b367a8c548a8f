"""
Kernel Data Models

SQLAlchemy models for projects, boards, membership and the audit trail.
"""

from src.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow, enum_value
from src.kernel.models.user import User
from src.kernel.models.project import Project, ProjectMember, MemberRole
from src.kernel.models.board import TaskColumn, Task, TaskPriority
from src.kernel.models.audit_log import AuditLog, AuditAction, EntityType, ACTION_CATEGORIES

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "utcnow",
    "enum_value",
    # User
    "User",
    # Project
    "Project",
    "ProjectMember",
    "MemberRole",
    # Board
    "TaskColumn",
    "Task",
    "TaskPriority",
    # Audit
    "AuditLog",
    "AuditAction",
    "EntityType",
    "ACTION_CATEGORIES",
]
