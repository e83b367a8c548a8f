"""
Read side of the audit trail: filtered pages, statistics and CSV export.

Everything here is computed from the audit_logs table (joined to users only
for display names) and has no side effects.
"""

import csv
import io
import json
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import desc, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.errors import AuditLogNotFound, InvalidQuery
from src.kernel.models.audit_log import ACTION_CATEGORIES, AuditLog
from src.kernel.models.base import enum_value, utcnow
from src.kernel.models.user import User

DEFAULT_LIMIT = 50
MAX_LIMIT = 200
ACTIVITY_DAYS = 30
TOP_USERS = 10

CSV_HEADERS = ["ID", "Action", "Entity Type", "Entity ID", "Date", "User Name", "Username", "Email", "Details"]


class AuditFilters(BaseModel):
    """Filters for listing audit rows."""

    action: Optional[str] = None
    entity_type: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = DEFAULT_LIMIT
    offset: int = 0


class Pagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    limit: int
    offset: int
    has_more: bool = Field(serialization_alias="hasMore")


class AuditRecord(BaseModel):
    """An audit row with the actor's display fields, when known."""

    id: uuid.UUID
    project_id: Optional[uuid.UUID]
    user_id: Optional[uuid.UUID]
    action: str
    entity_type: str
    entity_id: Optional[uuid.UUID]
    details: Dict[str, Any]
    correlation_id: Optional[str] = None
    created_at: datetime
    user_name: Optional[str] = None
    username: Optional[str] = None
    user_email: Optional[str] = None
    user_avatar: Optional[str] = None

    @classmethod
    def from_row(cls, log: AuditLog, user: Optional[User]) -> "AuditRecord":
        return cls(
            id=log.id,
            project_id=log.project_id,
            user_id=log.user_id,
            action=enum_value(log.action),
            entity_type=enum_value(log.entity_type),
            entity_id=log.entity_id,
            details=log.details or {},
            correlation_id=log.correlation_id,
            created_at=log.created_at,
            user_name=user.full_name if user else None,
            username=user.username if user else None,
            user_email=user.email if user else None,
            user_avatar=user.avatar_url if user else None,
        )


class AuditStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    by_action: List[Dict[str, Any]] = Field(serialization_alias="byAction")
    by_user: List[Dict[str, Any]] = Field(serialization_alias="byUser")
    by_entity_type: List[Dict[str, Any]] = Field(serialization_alias="byEntityType")
    activity_by_day: List[Dict[str, Any]] = Field(serialization_alias="activityByDay")


class AuditQueryService:
    """
    Query service over the audit log.

    Usage:
        service = AuditQueryService(session)
        rows, page = await service.list(project_id, AuditFilters(limit=50, offset=50))
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.clock = clock

    def validate(self, filters: AuditFilters) -> None:
        """Reject out-of-contract paging instead of clamping it."""
        if filters.limit > self.max_limit:
            raise InvalidQuery(f"limit must not exceed {self.max_limit}")
        if filters.limit < 1:
            raise InvalidQuery("limit must be at least 1")
        if filters.offset < 0:
            raise InvalidQuery("offset must not be negative")
        if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
            raise InvalidQuery("startDate must not be after endDate")

    def _conditions(self, project_id: uuid.UUID, filters: AuditFilters) -> List[Any]:
        conditions = [AuditLog.project_id == project_id]
        if filters.action:
            conditions.append(AuditLog.action == filters.action)
        if filters.entity_type:
            conditions.append(AuditLog.entity_type == filters.entity_type)
        if filters.user_id:
            conditions.append(AuditLog.user_id == filters.user_id)
        if filters.start_date:
            conditions.append(AuditLog.created_at >= filters.start_date)
        if filters.end_date:
            conditions.append(AuditLog.created_at <= filters.end_date)
        return conditions

    async def list(
        self,
        project_id: uuid.UUID,
        filters: Optional[AuditFilters] = None,
    ) -> Tuple[List[AuditRecord], Pagination]:
        """
        Get one page of a project's audit rows, newest first.

        Raises:
            InvalidQuery: limit above the maximum, or malformed paging/dates
        """
        filters = filters or AuditFilters(limit=self.default_limit)
        self.validate(filters)
        conditions = self._conditions(project_id, filters)

        count_query = select(func.count(AuditLog.id)).where(*conditions)
        total = (await self.session.execute(count_query)).scalar() or 0

        query = (
            select(AuditLog, User)
            .outerjoin(User, AuditLog.user_id == User.id)
            .where(*conditions)
            .order_by(desc(AuditLog.created_at), desc(AuditLog.id))
            .offset(filters.offset)
            .limit(filters.limit)
        )
        result = await self.session.execute(query)
        rows = [AuditRecord.from_row(log, user) for log, user in result.all()]

        return rows, Pagination(
            total=total,
            limit=filters.limit,
            offset=filters.offset,
            has_more=filters.offset + filters.limit < total,
        )

    async def get(self, log_id: uuid.UUID) -> AuditRecord:
        query = (
            select(AuditLog, User)
            .outerjoin(User, AuditLog.user_id == User.id)
            .where(AuditLog.id == log_id)
        )
        row = (await self.session.execute(query)).one_or_none()
        if row is None:
            raise AuditLogNotFound()
        return AuditRecord.from_row(*row)

    async def stats(
        self,
        project_id: uuid.UUID,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> AuditStats:
        """Aggregate counts by action, user, entity type and day."""
        conditions = [AuditLog.project_id == project_id]
        if start_date:
            conditions.append(AuditLog.created_at >= start_date)
        if end_date:
            conditions.append(AuditLog.created_at <= end_date)

        count = func.count(AuditLog.id).label("count")

        by_action = await self.session.execute(
            select(AuditLog.action, count)
            .where(*conditions)
            .group_by(AuditLog.action)
            .order_by(desc("count"), AuditLog.action)
        )

        action_count = func.count(AuditLog.id).label("action_count")
        by_user = await self.session.execute(
            select(
                AuditLog.user_id,
                User.full_name,
                User.username,
                User.avatar_url,
                action_count,
            )
            .outerjoin(User, AuditLog.user_id == User.id)
            .where(*conditions)
            .group_by(AuditLog.user_id, User.full_name, User.username, User.avatar_url)
            .order_by(desc("action_count"))
            .limit(TOP_USERS)
        )

        by_entity = await self.session.execute(
            select(AuditLog.entity_type, count)
            .where(*conditions)
            .group_by(AuditLog.entity_type)
            .order_by(desc("count"), AuditLog.entity_type)
        )

        # Last 30 days regardless of the date filters
        day = func.date(AuditLog.created_at).label("date")
        since = self.clock() - timedelta(days=ACTIVITY_DAYS)
        by_day = await self.session.execute(
            select(day, count)
            .where(AuditLog.project_id == project_id, AuditLog.created_at >= since)
            .group_by(day)
            .order_by(desc("date"))
        )

        return AuditStats(
            by_action=[{"action": a, "count": c} for a, c in by_action.all()],
            by_user=[
                {
                    "user_id": str(uid) if uid else None,
                    "full_name": full_name,
                    "username": username,
                    "avatar_url": avatar_url,
                    "action_count": n,
                }
                for uid, full_name, username, avatar_url, n in by_user.all()
            ],
            by_entity_type=[{"entity_type": e, "count": c} for e, c in by_entity.all()],
            activity_by_day=[{"date": str(d), "count": c} for d, c in by_day.all()],
        )

    async def distinct_actions(self) -> Dict[str, Any]:
        """All recorded actions, plus the same list split by category."""
        result = await self.session.execute(
            select(distinct(AuditLog.action)).order_by(AuditLog.action)
        )
        actions = [enum_value(a) for a in result.scalars().all()]
        return {
            "all": actions,
            "categorized": {
                category: [a for a in actions if a.startswith(prefix)]
                for category, prefix in ACTION_CATEGORIES.items()
            },
        }

    async def export_csv(
        self,
        project_id: uuid.UUID,
        filters: Optional[AuditFilters] = None,
    ) -> str:
        """Every matching row (no paging) as CSV text."""
        filters = filters or AuditFilters()
        query = (
            select(AuditLog, User)
            .outerjoin(User, AuditLog.user_id == User.id)
            .where(*self._conditions(project_id, filters))
            .order_by(desc(AuditLog.created_at))
        )
        result = await self.session.execute(query)

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for log, user in result.all():
            writer.writerow([
                log.id,
                enum_value(log.action),
                enum_value(log.entity_type),
                log.entity_id or "",
                log.created_at.isoformat(),
                user.full_name if user else "",
                (user.username or "") if user else "",
                user.email if user else "",
                json.dumps(log.details or {}),
            ])
        return buffer.getvalue()
