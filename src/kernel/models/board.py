"""
Board models - columns and tasks.

Position is the only ordering key. Uniqueness is enforced by the store:
one position per column within a project, one position per task within a
column.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.kernel.models.base import Base, TimestampMixin, generate_uuid

if TYPE_CHECKING:
    from src.kernel.models.project import Project


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskColumn(Base, TimestampMixin):
    """A column on a project board."""

    __tablename__ = "task_columns"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    color: Mapped[str] = mapped_column(
        String(7),
        default="#6B7280",
        nullable=False,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    project: Mapped["Project"] = relationship(
        "Project",
        back_populates="columns",
    )
    tasks: Mapped[List["Task"]] = relationship(
        "Task",
        back_populates="column",
        order_by="Task.position",
    )

    __table_args__ = (
        UniqueConstraint("project_id", "position", name="uq_task_columns_project_position"),
    )

    def __repr__(self) -> str:
        return f"<TaskColumn {self.name} pos={self.position}>"


class Task(Base, TimestampMixin):
    """A card inside a column."""

    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    column_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("task_columns.id"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    priority: Mapped[TaskPriority] = mapped_column(
        String(20),
        default=TaskPriority.MEDIUM,
        nullable=False,
    )
    tags: Mapped[list] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assignee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    column: Mapped["TaskColumn"] = relationship(
        "TaskColumn",
        back_populates="tasks",
    )

    __table_args__ = (
        UniqueConstraint("column_id", "position", name="uq_tasks_column_position"),
    )

    def __repr__(self) -> str:
        return f"<Task {self.title!r} column={self.column_id} pos={self.position}>"
