"""
System tests: HTTP contracts of the board API, in-process against SQLite.

The ASGI transport does not run the lifespan, so the test Database is put on
app.state directly. Background audit tasks finish before each call returns.
"""

import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.kernel.models import MemberRole, ProjectMember
from src.main import app

API = "/api/v1"


@pytest_asyncio.fixture
async def client(database):
    app.state.database = database
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def board(client, db_session, owner, member, auth_headers):
    """A project created through the API, with ``member`` added as a member."""
    response = await client.post(
        f"{API}/projects",
        json={"name": "Launch"},
        headers=auth_headers(owner),
    )
    assert response.status_code == 201
    project_id = response.json()["id"]

    db_session.add(ProjectMember(
        project_id=uuid.UUID(project_id),
        user_id=member.id,
        role=MemberRole.MEMBER.value,
    ))
    await db_session.commit()

    response = await client.get(f"{API}/projects/{project_id}/board", headers=auth_headers(owner))
    return response.json()


def _column_ids(board):
    return [c["id"] for c in board["columns"]]


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"


@pytest.mark.asyncio
async def test_requires_authentication(client):
    response = await client.get(f"{API}/projects")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_request_id_is_echoed(client, owner, auth_headers):
    response = await client.get(
        f"{API}/projects",
        headers={**auth_headers(owner), "X-Request-ID": "trace-42"},
    )
    assert response.headers["X-Request-ID"] == "trace-42"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "incoming,expected",
    [
        ("a" * 80, "a" * 64),
        ("svc.web:trace_7", "svc.web:trace_7"),
    ],
)
async def test_request_id_is_normalized(client, owner, auth_headers, incoming, expected):
    response = await client.get(
        f"{API}/projects",
        headers={**auth_headers(owner), "X-Request-ID": incoming},
    )
    assert response.headers["X-Request-ID"] == expected


@pytest.mark.asyncio
async def test_unsafe_request_id_is_replaced(client, owner, auth_headers):
    response = await client.get(
        f"{API}/projects",
        headers={**auth_headers(owner), "X-Request-ID": 'evil",id'},
    )
    request_id = response.headers["X-Request-ID"]
    assert request_id != 'evil",id'
    assert uuid.UUID(request_id)


class TestProjects:

    @pytest.mark.asyncio
    async def test_create_seeds_default_columns(self, client, owner, board):
        assert board["project"]["role"] == "owner"
        assert [c["name"] for c in board["columns"]] == ["To Do", "In Progress", "Review", "Done"]
        assert [c["position"] for c in board["columns"]] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_seeded_column_rows_attributed_to_creator(self, client, owner, board, auth_headers):
        project_id = board["project"]["id"]

        response = await client.get(
            f"{API}/audit",
            params={"projectId": project_id, "action": "column_created"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        logs = response.json()["logs"]
        assert len(logs) == 4
        assert all(log["user_id"] == str(owner.id) for log in logs)

    @pytest.mark.asyncio
    async def test_list_includes_memberships(self, client, member, board, auth_headers):
        response = await client.get(f"{API}/projects", headers=auth_headers(member))

        assert response.status_code == 200
        (project,) = response.json()
        assert project["role"] == "member"

    @pytest.mark.asyncio
    async def test_outsider_cannot_read_board(self, client, outsider, board, auth_headers):
        response = await client.get(
            f"{API}/projects/{board['project']['id']}/board",
            headers=auth_headers(outsider),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "NotAMember"


class TestColumns:

    @pytest.mark.asyncio
    async def test_member_can_reorder_columns(self, client, member, board, auth_headers):
        ids = _column_ids(board)
        payload = {
            "projectId": board["project"]["id"],
            "columns": [{"id": column_id, "position": 3 - i} for i, column_id in enumerate(ids)],
        }

        response = await client.patch(f"{API}/columns/reorder", json=payload, headers=auth_headers(member))

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == list(reversed(ids))
        assert [c["position"] for c in response.json()] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_reorder_with_missing_column_rejected(self, client, owner, board, auth_headers):
        ids = _column_ids(board)
        payload = {
            "projectId": board["project"]["id"],
            "columns": [{"id": column_id, "position": i} for i, column_id in enumerate(ids[1:])],
        }

        response = await client.patch(f"{API}/columns/reorder", json=payload, headers=auth_headers(owner))

        assert response.status_code == 400
        assert response.json()["code"] == "InvalidReorderSet"

    @pytest.mark.asyncio
    async def test_member_cannot_create_column(self, client, member, board, auth_headers):
        response = await client.post(
            f"{API}/columns",
            json={"projectId": board["project"]["id"], "name": "Blocked"},
            headers=auth_headers(member),
        )
        assert response.status_code == 403
        assert response.json() == {
            "detail": "Access denied. Insufficient permissions.",
            "code": "InsufficientRole",
        }

    @pytest.mark.asyncio
    async def test_create_at_position(self, client, owner, board, auth_headers):
        response = await client.post(
            f"{API}/columns",
            json={"project_id": board["project"]["id"], "name": "Blocked", "position": 1},
            headers=auth_headers(owner),
        )
        assert response.status_code == 201
        assert response.json()["position"] == 1

        board_response = await client.get(
            f"{API}/projects/{board['project']['id']}/board",
            headers=auth_headers(owner),
        )
        names = [c["name"] for c in board_response.json()["columns"]]
        assert names == ["To Do", "Blocked", "In Progress", "Review", "Done"]

    @pytest.mark.asyncio
    async def test_rename_and_delete(self, client, owner, board, auth_headers):
        column_id = board["columns"][2]["id"]

        response = await client.put(
            f"{API}/columns/{column_id}",
            json={"name": "QA"},
            headers=auth_headers(owner),
        )
        assert response.status_code == 200
        assert response.json()["name"] == "QA"

        response = await client.delete(f"{API}/columns/{column_id}", headers=auth_headers(owner))
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_delete_column_with_tasks_rejected(self, client, owner, board, auth_headers):
        column_id = board["columns"][0]["id"]
        await client.post(
            f"{API}/tasks",
            json={"columnId": column_id, "title": "Keep me"},
            headers=auth_headers(owner),
        )

        response = await client.delete(f"{API}/columns/{column_id}", headers=auth_headers(owner))

        assert response.status_code == 400
        assert response.json()["code"] == "ColumnNotEmpty"


class TestTasks:

    async def _create(self, client, headers, column_id, title):
        response = await client.post(
            f"{API}/tasks",
            json={"columnId": column_id, "title": title},
            headers=headers,
        )
        assert response.status_code == 201
        return response.json()

    @pytest.mark.asyncio
    async def test_move_between_columns(self, client, member, board, auth_headers):
        headers = auth_headers(member)
        todo, doing = board["columns"][0]["id"], board["columns"][1]["id"]
        first = await self._create(client, headers, todo, "first")
        await self._create(client, headers, doing, "existing")

        response = await client.put(
            f"{API}/tasks/{first['id']}",
            json={"columnId": doing, "position": 0, "priority": "high"},
            headers=headers,
        )

        assert response.status_code == 200
        moved = response.json()
        assert (moved["column_id"], moved["position"], moved["priority"]) == (doing, 0, "high")

        board_response = await client.get(
            f"{API}/projects/{board['project']['id']}/board",
            headers=headers,
        )
        doing_tasks = board_response.json()["columns"][1]["tasks"]
        assert [t["title"] for t in doing_tasks] == ["first", "existing"]
        assert [t["position"] for t in doing_tasks] == [0, 1]

    @pytest.mark.asyncio
    async def test_edit_naming_same_column_keeps_position(self, client, member, board, auth_headers):
        headers = auth_headers(member)
        todo = board["columns"][0]["id"]
        first = await self._create(client, headers, todo, "first")
        await self._create(client, headers, todo, "second")

        response = await client.put(
            f"{API}/tasks/{first['id']}",
            json={"columnId": todo, "title": "first, renamed"},
            headers=headers,
        )

        assert response.status_code == 200
        assert (response.json()["column_id"], response.json()["position"]) == (todo, 0)

    @pytest.mark.asyncio
    async def test_cross_project_move_rejected(self, client, owner, board, auth_headers):
        headers = auth_headers(owner)
        task = await self._create(client, headers, board["columns"][0]["id"], "stay")
        other = (await client.post(f"{API}/projects", json={"name": "Other"}, headers=headers)).json()
        other_board = (await client.get(f"{API}/projects/{other['id']}/board", headers=headers)).json()

        response = await client.put(
            f"{API}/tasks/{task['id']}",
            json={"columnId": other_board["columns"][0]["id"]},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "CrossProjectMoveRejected"

    @pytest.mark.asyncio
    async def test_reorder_tasks(self, client, member, board, auth_headers):
        headers = auth_headers(member)
        column_id = board["columns"][0]["id"]
        a = await self._create(client, headers, column_id, "a")
        b = await self._create(client, headers, column_id, "b")

        response = await client.patch(
            f"{API}/tasks/reorder",
            json={"columnId": column_id, "tasks": [{"id": a["id"], "position": 1}, {"id": b["id"], "position": 0}]},
            headers=headers,
        )

        assert response.status_code == 200
        assert [t["title"] for t in response.json()] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_member_cannot_delete_others_task(self, client, owner, member, board, auth_headers):
        task = await self._create(client, auth_headers(owner), board["columns"][0]["id"], "owner's")

        response = await client.delete(f"{API}/tasks/{task['id']}", headers=auth_headers(member))

        assert response.status_code == 403
        assert response.json()["code"] == "InsufficientRole"

    @pytest.mark.asyncio
    async def test_member_deletes_own_task(self, client, member, board, auth_headers):
        headers = auth_headers(member)
        task = await self._create(client, headers, board["columns"][0]["id"], "mine")

        response = await client.delete(f"{API}/tasks/{task['id']}", headers=headers)

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_unknown_task_is_404(self, client, owner, board, auth_headers):
        response = await client.delete(f"{API}/tasks/{uuid.uuid4()}", headers=auth_headers(owner))
        assert response.status_code == 404
        assert response.json()["code"] == "TaskNotFound"


class TestAudit:

    @pytest.mark.asyncio
    async def test_limit_above_maximum_rejected(self, client, owner, board, auth_headers):
        response = await client.get(
            f"{API}/audit",
            params={"projectId": board["project"]["id"], "limit": 500},
            headers=auth_headers(owner),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "InvalidQuery"

    @pytest.mark.asyncio
    async def test_pagination_shape(self, client, owner, board, auth_headers):
        response = await client.get(
            f"{API}/audit",
            params={"projectId": board["project"]["id"], "limit": 2},
            headers=auth_headers(owner),
        )
        pagination = response.json()["pagination"]
        assert pagination == {"total": 5, "limit": 2, "offset": 0, "hasMore": True}

    @pytest.mark.asyncio
    async def test_member_cannot_view_audit(self, client, member, board, auth_headers):
        response = await client.get(
            f"{API}/audit",
            params={"projectId": board["project"]["id"]},
            headers=auth_headers(member),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_task_move_is_audited(self, client, owner, board, auth_headers):
        headers = auth_headers(owner)
        todo, done = board["columns"][0]["id"], board["columns"][3]["id"]
        task = (await client.post(f"{API}/tasks", json={"columnId": todo, "title": "ship"}, headers=headers)).json()
        await client.put(f"{API}/tasks/{task['id']}", json={"columnId": done}, headers=headers)

        response = await client.get(
            f"{API}/audit",
            params={"projectId": board["project"]["id"], "action": "task_moved"},
            headers=headers,
        )

        (log,) = response.json()["logs"]
        assert log["entity_id"] == task["id"]
        assert log["details"]["new_column_id"] == done
        assert log["user_id"] == str(owner.id)

    @pytest.mark.asyncio
    async def test_stats_actions_and_export(self, client, owner, board, auth_headers):
        headers = auth_headers(owner)
        params = {"projectId": board["project"]["id"]}

        stats = await client.get(f"{API}/audit/stats", params=params, headers=headers)
        assert stats.status_code == 200
        assert {"byAction", "byUser", "byEntityType", "activityByDay"} <= set(stats.json())

        actions = await client.get(f"{API}/audit/actions", headers=headers)
        assert "column_created" in actions.json()["all"]

        export = await client.get(f"{API}/audit/export", params=params, headers=headers)
        assert export.status_code == 200
        assert export.headers["content-type"].startswith("text/csv")
        assert "attachment" in export.headers["content-disposition"]
        assert export.text.startswith('"ID","Action"')

    @pytest.mark.asyncio
    async def test_single_log(self, client, owner, board, auth_headers):
        headers = auth_headers(owner)
        logs = (await client.get(
            f"{API}/audit",
            params={"projectId": board["project"]["id"], "limit": 1},
            headers=headers,
        )).json()["logs"]

        response = await client.get(f"{API}/audit/logs/{logs[0]['id']}", headers=headers)

        assert response.status_code == 200
        assert response.json()["id"] == logs[0]["id"]

    @pytest.mark.asyncio
    async def test_single_log_hidden_from_non_auditors(
        self, client, owner, member, outsider, board, auth_headers
    ):
        logs = (await client.get(
            f"{API}/audit",
            params={"projectId": board["project"]["id"], "limit": 1},
            headers=auth_headers(owner),
        )).json()["logs"]

        for user in (member, outsider):
            existing = await client.get(f"{API}/audit/logs/{logs[0]['id']}", headers=auth_headers(user))
            missing = await client.get(f"{API}/audit/logs/{uuid.uuid4()}", headers=auth_headers(user))

            assert existing.status_code == missing.status_code == 404
            assert existing.json() == missing.json() == {
                "detail": "Audit log not found",
                "code": "AuditLogNotFound",
            }
