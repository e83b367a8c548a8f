"""
Project endpoints.
"""

import uuid
from typing import List

from fastapi import APIRouter, BackgroundTasks, status
from sqlalchemy import or_, select

from src.api.deps import Authorizer, CurrentUser, DbSession, Positions, Recorder
from src.kernel.audit import AuditEntry, AuditRecorder
from src.kernel.errors import ProjectNotFound
from src.kernel.models.audit_log import AuditAction, EntityType
from src.kernel.models.project import MemberRole, Project, ProjectMember
from src.logging_config import get_logger, get_request_id
from src.schemas.board import (
    BoardColumn,
    BoardResponse,
    ColumnResponse,
    ProjectCreate,
    ProjectResponse,
    TaskResponse,
)

logger = get_logger(__name__)

router = APIRouter()


async def _record_seeded_columns(
    recorder: AuditRecorder,
    entries: List[AuditEntry],
    owner_id: uuid.UUID,
    correlation_id: str,
) -> None:
    """Append the system-written column rows, then attribute them to the creator."""
    await recorder.record(entries)
    for entry in entries:
        await recorder.backfill_actor(
            entry.project_id,
            entry.entity_type,
            entry.entity_id,
            owner_id,
            correlation_id=correlation_id,
        )


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    user: CurrentUser,
    db: DbSession,
    positions: Positions,
    recorder: Recorder,
    background_tasks: BackgroundTasks,
):
    """Create a project with the default columns; the caller becomes owner."""
    values = {"name": data.name, "description": data.description, "owner_id": user.id}
    if data.color:
        values["color"] = data.color
    project = Project(**values)
    db.add(project)
    await db.flush()

    db.add(ProjectMember(project_id=project.id, user_id=user.id, role=MemberRole.OWNER.value))
    seeded = await positions.seed_default_columns(project.id)
    await db.commit()
    await db.refresh(project)

    background_tasks.add_task(recorder.record, [AuditEntry(
        project_id=project.id,
        action=AuditAction.PROJECT_CREATED,
        entity_type=EntityType.PROJECT,
        entity_id=project.id,
        user_id=user.id,
        details={"project_name": project.name},
    )])
    background_tasks.add_task(
        _record_seeded_columns,
        recorder,
        seeded.audit,
        user.id,
        get_request_id(),
    )

    logger.info("Project created", extra={"project_id": str(project.id)})
    response = ProjectResponse.model_validate(project)
    response.role = MemberRole.OWNER
    return response


@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    user: CurrentUser,
    db: DbSession,
):
    """Projects the caller owns or belongs to."""
    query = (
        select(Project, ProjectMember.role)
        .outerjoin(
            ProjectMember,
            (ProjectMember.project_id == Project.id) & (ProjectMember.user_id == user.id),
        )
        .where(or_(Project.owner_id == user.id, ProjectMember.user_id == user.id))
        .order_by(Project.created_at.desc())
    )
    result = await db.execute(query)

    projects = []
    for project, role in result.all():
        item = ProjectResponse.model_validate(project)
        item.role = MemberRole.OWNER if project.owner_id == user.id else MemberRole(role)
        projects.append(item)
    return projects


@router.get("/{project_id}/board", response_model=BoardResponse)
async def get_board(
    project_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    authorizer: Authorizer,
    positions: Positions,
):
    """Columns and their tasks, both in position order."""
    project = await db.get(Project, project_id)
    if project is None:
        raise ProjectNotFound()
    role = await authorizer.resolve_role(project_id, user.id)

    columns = await positions.list_columns(project_id)
    tasks = await positions.list_tasks(project_id)

    by_column = {column.id: [] for column in columns}
    for task in tasks:
        by_column[task.column_id].append(TaskResponse.model_validate(task))

    project_response = ProjectResponse.model_validate(project)
    project_response.role = role
    return BoardResponse(
        project=project_response,
        columns=[
            BoardColumn(
                **ColumnResponse.model_validate(column).model_dump(),
                tasks=by_column[column.id],
            )
            for column in columns
        ],
    )
