"""
Project, column and task schemas.

Request bodies accept both snake_case and the camelCase keys used by the
board client (``projectId``, ``columnId``).
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.kernel.models.board import TaskPriority
from src.kernel.models.project import MemberRole

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class ProjectCreate(BaseModel):
    """Project creation request."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR)


class ProjectResponse(BaseModel):
    """Project response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str]
    color: str
    owner_id: uuid.UUID
    role: Optional[MemberRole] = None
    created_at: datetime
    updated_at: datetime


class ColumnCreate(BaseModel):
    """Column creation request. Without position the column is appended."""

    model_config = ConfigDict(populate_by_name=True)

    project_id: uuid.UUID = Field(..., alias="projectId")
    name: str = Field(..., min_length=1, max_length=255)
    color: Optional[str] = Field(None, pattern=HEX_COLOR)
    position: Optional[int] = Field(None, ge=0)


class ColumnUpdate(BaseModel):
    """Column update request."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    color: Optional[str] = Field(None, pattern=HEX_COLOR)


class ColumnResponse(BaseModel):
    """Column response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    color: str
    position: int
    created_at: datetime
    updated_at: datetime


class PositionEntry(BaseModel):
    """One element of a bulk reorder request."""

    id: uuid.UUID
    position: int


class ColumnReorderRequest(BaseModel):
    """Full new column order for a project."""

    model_config = ConfigDict(populate_by_name=True)

    project_id: uuid.UUID = Field(..., alias="projectId")
    columns: List[PositionEntry]

    def ordered_ids(self) -> List[uuid.UUID]:
        return [entry.id for entry in sorted(self.columns, key=lambda e: e.position)]


class TaskCreate(BaseModel):
    """Task creation request. New tasks go to the end of the column."""

    model_config = ConfigDict(populate_by_name=True)

    project_id: Optional[uuid.UUID] = Field(None, alias="projectId")
    column_id: uuid.UUID = Field(..., alias="columnId")
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    tags: List[str] = Field(default_factory=list)
    due_date: Optional[datetime] = Field(None, alias="dueDate")
    assignee_id: Optional[uuid.UUID] = Field(None, alias="assigneeId")


class TaskUpdate(BaseModel):
    """
    Task update request.

    ``column_id`` and/or ``position`` turn the update into a move; position
    is an index into the target column.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    tags: Optional[List[str]] = None
    due_date: Optional[datetime] = Field(None, alias="dueDate")
    assignee_id: Optional[uuid.UUID] = Field(None, alias="assigneeId")
    column_id: Optional[uuid.UUID] = Field(None, alias="columnId")
    position: Optional[int] = None


class TaskResponse(BaseModel):
    """Task response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    column_id: uuid.UUID
    title: str
    description: Optional[str]
    priority: TaskPriority
    tags: List[str]
    due_date: Optional[datetime]
    position: int
    created_by: Optional[uuid.UUID]
    assignee_id: Optional[uuid.UUID]
    created_at: datetime
    updated_at: datetime


class TaskReorderRequest(BaseModel):
    """Full new task order for one column."""

    model_config = ConfigDict(populate_by_name=True)

    column_id: uuid.UUID = Field(..., alias="columnId")
    tasks: List[PositionEntry]

    def ordered_ids(self) -> List[uuid.UUID]:
        return [entry.id for entry in sorted(self.tasks, key=lambda e: e.position)]


class BoardColumn(ColumnResponse):
    """Column with its tasks, in order."""

    tasks: List[TaskResponse] = Field(default_factory=list)


class BoardResponse(BaseModel):
    """A project's full board."""

    project: ProjectResponse
    columns: List[BoardColumn]
