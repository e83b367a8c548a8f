"""
Integration tests for AuditQueryService: paging contract, stats and export.
"""

import csv
import io
import uuid
from datetime import timedelta

import pytest
import pytest_asyncio

from src.kernel.audit import AuditFilters, AuditQueryService
from src.kernel.errors import AuditLogNotFound, InvalidQuery
from src.kernel.models import AuditAction, AuditLog, EntityType
from src.kernel.models.base import utcnow

TOTAL_ROWS = 120


@pytest_asyncio.fixture
async def audit_rows(db_session, project, owner, member):
    """120 rows one second apart; every third row is a member's task move."""
    now = utcnow()
    rows = []
    for i in range(TOTAL_ROWS):
        by_member = i % 3 == 0
        rows.append(AuditLog(
            id=uuid.uuid4(),
            project_id=project.id,
            user_id=member.id if by_member else owner.id,
            action=(AuditAction.TASK_MOVED if by_member else AuditAction.COLUMN_CREATED).value,
            entity_type=(EntityType.TASK if by_member else EntityType.COLUMN).value,
            entity_id=uuid.uuid4(),
            details={"index": i},
            created_at=now - timedelta(seconds=i),
        ))
    db_session.add_all(rows)
    await db_session.commit()
    return rows


@pytest.fixture
def service(db_session):
    return AuditQueryService(db_session)


class TestValidation:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "filters",
        [
            AuditFilters(limit=500),
            AuditFilters(limit=201),
            AuditFilters(limit=0),
            AuditFilters(offset=-1),
        ],
    )
    async def test_out_of_contract_paging_rejected(self, service, project, filters):
        with pytest.raises(InvalidQuery):
            await service.list(project.id, filters)

    @pytest.mark.asyncio
    async def test_inverted_date_range_rejected(self, service, project):
        now = utcnow()
        with pytest.raises(InvalidQuery):
            await service.list(project.id, AuditFilters(start_date=now, end_date=now - timedelta(days=1)))

    @pytest.mark.asyncio
    async def test_max_limit_accepted(self, service, project, audit_rows):
        rows, page = await service.list(project.id, AuditFilters(limit=200))
        assert len(rows) == TOTAL_ROWS
        assert page.has_more is False


class TestList:

    @pytest.mark.asyncio
    async def test_second_page(self, service, project, audit_rows):
        rows, page = await service.list(project.id, AuditFilters(limit=50, offset=50))

        assert [r.details["index"] for r in rows] == list(range(50, 100))
        assert (page.total, page.limit, page.offset) == (TOTAL_ROWS, 50, 50)
        assert page.has_more is True
        assert page.model_dump(by_alias=True)["hasMore"] is True

    @pytest.mark.asyncio
    async def test_last_page(self, service, project, audit_rows):
        rows, page = await service.list(project.id, AuditFilters(limit=50, offset=100))

        assert len(rows) == 20
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_default_limit(self, service, project, audit_rows):
        rows, page = await service.list(project.id)
        assert len(rows) == 50
        assert page.limit == 50

    @pytest.mark.asyncio
    async def test_filters_and_actor_fields(self, service, project, member, audit_rows):
        rows, page = await service.list(
            project.id,
            AuditFilters(action="task_moved", user_id=member.id, limit=200),
        )

        assert page.total == 40
        assert all(r.action == "task_moved" for r in rows)
        assert rows[0].user_name == "Member"
        assert rows[0].username == "member"
        assert rows[0].user_email == "member@example.com"

    @pytest.mark.asyncio
    async def test_other_projects_rows_excluded(self, service, factory, owner, audit_rows):
        other = await factory.project(owner, name="Other")
        rows, page = await service.list(other.id)
        assert rows == []
        assert page.total == 0

    @pytest.mark.asyncio
    async def test_get_single_row(self, service, audit_rows):
        record = await service.get(audit_rows[0].id)
        assert record.details == {"index": 0}

    @pytest.mark.asyncio
    async def test_get_missing_row(self, service):
        with pytest.raises(AuditLogNotFound):
            await service.get(uuid.uuid4())


class TestStats:

    @pytest.mark.asyncio
    async def test_counts(self, service, project, owner, member, audit_rows):
        stats = await service.stats(project.id)

        assert stats.by_action == [
            {"action": "column_created", "count": 80},
            {"action": "task_moved", "count": 40},
        ]
        assert [u["user_id"] for u in stats.by_user] == [str(owner.id), str(member.id)]
        assert {e["entity_type"]: e["count"] for e in stats.by_entity_type} == {"column": 80, "task": 40}
        assert sum(day["count"] for day in stats.activity_by_day) == TOTAL_ROWS

        dumped = stats.model_dump(by_alias=True)
        assert set(dumped) == {"byAction", "byUser", "byEntityType", "activityByDay"}

    @pytest.mark.asyncio
    async def test_distinct_actions(self, service, audit_rows):
        actions = await service.distinct_actions()

        assert actions["all"] == ["column_created", "task_moved"]
        assert actions["categorized"]["columns"] == ["column_created"]
        assert actions["categorized"]["tasks"] == ["task_moved"]
        assert actions["categorized"]["members"] == []


@pytest.mark.asyncio
async def test_export_csv(service, project, member, audit_rows):
    content = await service.export_csv(project.id, AuditFilters(user_id=member.id))

    rows = list(csv.reader(io.StringIO(content)))
    assert rows[0] == [
        "ID", "Action", "Entity Type", "Entity ID", "Date", "User Name", "Username", "Email", "Details",
    ]
    assert len(rows) == 1 + 40
    assert rows[1][1] == "task_moved"
    assert rows[1][7] == "member@example.com"
