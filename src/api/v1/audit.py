"""
Audit trail endpoints. Owners and admins only.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, Response

from src.api.deps import AuditQuery, Authorizer, CurrentUser
from src.kernel.audit import AuditFilters, AuditRecord, AuditStats
from src.kernel.errors import AuditLogNotFound, AuthorizationError
from src.kernel.models.base import utcnow
from src.kernel.permissions import ActionClass
from src.schemas.audit import AuditListResponse

router = APIRouter()


@router.get("", response_model=AuditListResponse, response_model_by_alias=True)
async def list_audit_logs(
    user: CurrentUser,
    authorizer: Authorizer,
    audit: AuditQuery,
    project_id: uuid.UUID = Query(..., alias="projectId"),
    action: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
):
    """
    One page of a project's audit trail, newest first.

    ``limit`` defaults to 50; anything above 200 is rejected with
    InvalidQuery rather than clamped.
    """
    await authorizer.require(project_id, user.id, ActionClass.VIEW_AUDIT)
    filters = AuditFilters(
        action=action,
        entity_type=entity_type,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        limit=audit.default_limit if limit is None else limit,
        offset=offset,
    )
    logs, pagination = await audit.list(project_id, filters)
    return AuditListResponse(logs=logs, pagination=pagination)


@router.get("/stats", response_model=AuditStats, response_model_by_alias=True)
async def audit_stats(
    user: CurrentUser,
    authorizer: Authorizer,
    audit: AuditQuery,
    project_id: uuid.UUID = Query(..., alias="projectId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
):
    await authorizer.require(project_id, user.id, ActionClass.VIEW_AUDIT)
    return await audit.stats(project_id, start_date, end_date)


@router.get("/actions")
async def audit_actions(
    user: CurrentUser,
    audit: AuditQuery,
) -> Dict[str, Any]:
    """Actions present in the trail, flat and by category."""
    return await audit.distinct_actions()


@router.get("/logs/{log_id}", response_model=AuditRecord)
async def get_audit_log(
    log_id: uuid.UUID,
    user: CurrentUser,
    authorizer: Authorizer,
    audit: AuditQuery,
):
    """
    A single audit row.

    Rows of projects the caller cannot audit answer 404 like missing ones.
    """
    record = await audit.get(log_id)
    try:
        await authorizer.require(record.project_id, user.id, ActionClass.VIEW_AUDIT)
    except AuthorizationError:
        raise AuditLogNotFound() from None
    return record


@router.get("/export")
async def export_audit_logs(
    user: CurrentUser,
    authorizer: Authorizer,
    audit: AuditQuery,
    project_id: uuid.UUID = Query(..., alias="projectId"),
    action: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
):
    """Every matching row as a CSV attachment."""
    await authorizer.require(project_id, user.id, ActionClass.VIEW_AUDIT)
    filters = AuditFilters(
        action=action,
        entity_type=entity_type,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
    )
    content = await audit.export_csv(project_id, filters)
    filename = f"audit-log-{project_id}-{utcnow().date().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
