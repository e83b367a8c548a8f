"""
Pytest fixtures for board core tests.

Every test gets its own temp-file SQLite database so the request session,
the audit recorder's sessions and the assertions all see the same store.
"""

import uuid
from typing import AsyncGenerator, Callable, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from src.database import Database
from src.kernel.identity.jwt import create_access_token
from src.kernel.models import MemberRole, Project, ProjectMember, Task, TaskColumn, User
from src.kernel.ordering import PositionManager


class BoardFactory:
    """Writes fixture rows straight to the store, bypassing authorization."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def user(self, name: str) -> User:
        user = User(
            id=uuid.uuid4(),
            email=f"{name}@example.com",
            full_name=name.title(),
            username=name,
        )
        self.session.add(user)
        await self.session.commit()
        return user

    async def project(
        self,
        owner: User,
        name: str = "Launch",
        members: Optional[Dict[User, MemberRole]] = None,
    ) -> Project:
        project = Project(id=uuid.uuid4(), name=name, owner_id=owner.id)
        self.session.add(project)
        await self.session.flush()
        self.session.add(ProjectMember(project_id=project.id, user_id=owner.id, role=MemberRole.OWNER.value))
        for user, role in (members or {}).items():
            self.session.add(ProjectMember(project_id=project.id, user_id=user.id, role=role.value))
        await self.session.commit()
        return project

    async def columns(self, project: Project, names: List[str]) -> List[TaskColumn]:
        columns = [
            TaskColumn(id=uuid.uuid4(), project_id=project.id, name=name, position=index)
            for index, name in enumerate(names)
        ]
        self.session.add_all(columns)
        await self.session.commit()
        return columns

    async def tasks(self, column: TaskColumn, titles: List[str], created_by: User) -> List[Task]:
        tasks = [
            Task(
                id=uuid.uuid4(),
                project_id=column.project_id,
                column_id=column.id,
                title=title,
                position=index,
                created_by=created_by.id,
            )
            for index, title in enumerate(titles)
        ]
        self.session.add_all(tasks)
        await self.session.commit()
        return tasks


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Fresh file-backed SQLite database with the full schema."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'board.db'}")
    await db.create_all()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session() as session:
        yield session


@pytest.fixture
def factory(db_session: AsyncSession) -> BoardFactory:
    return BoardFactory(db_session)


@pytest_asyncio.fixture
async def owner(factory: BoardFactory) -> User:
    return await factory.user("owner")


@pytest_asyncio.fixture
async def admin(factory: BoardFactory) -> User:
    return await factory.user("admin")


@pytest_asyncio.fixture
async def member(factory: BoardFactory) -> User:
    return await factory.user("member")


@pytest_asyncio.fixture
async def outsider(factory: BoardFactory) -> User:
    return await factory.user("outsider")


@pytest_asyncio.fixture
async def project(factory: BoardFactory, owner: User, admin: User, member: User) -> Project:
    """Project owned by ``owner`` with one admin and one plain member."""
    return await factory.project(
        owner,
        members={admin: MemberRole.ADMIN, member: MemberRole.MEMBER},
    )


@pytest.fixture
def positions(db_session: AsyncSession) -> PositionManager:
    return PositionManager(db_session)


@pytest.fixture
def auth_headers() -> Callable[[User], dict]:
    """Build bearer headers for a user."""

    def _headers(user: User) -> dict:
        token = create_access_token(user.id, user.email)
        return {"Authorization": f"Bearer {token}"}

    return _headers
