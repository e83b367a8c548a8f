"""
Board Kernel

Foundational components shared by every route:
- Models (users, projects, membership, columns, tasks, audit log)
- RoleAuthorizer (capability matrix per project role)
- PositionManager (strict, unique ordering of columns and tasks)
- Audit trail (best-effort recorder and read-side queries)

Invariants:
- Every committed sequence holds each position at most once
- Audit writes never fail or roll back the mutation they describe
"""

from src.kernel.models import (
    User,
    Project,
    ProjectMember,
    MemberRole,
    TaskColumn,
    Task,
    TaskPriority,
    AuditLog,
    AuditAction,
    EntityType,
)

__all__ = [
    # Identity
    "User",
    # Projects
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
]
