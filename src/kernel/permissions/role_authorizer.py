"""
Role resolution and capability checks for project mutations.
"""

import uuid
from enum import Enum
from typing import Dict, FrozenSet, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.errors import InsufficientRole, NotAMember
from src.kernel.models.project import MemberRole, Project, ProjectMember
from src.logging_config import get_logger

logger = get_logger(__name__)


class ActionClass(str, Enum):
    """Groups of mutations that share one row of the capability matrix."""
    MANAGE_MEMBERS = "manage_members"
    MANAGE_COLUMNS = "manage_columns"
    REORDER = "reorder"
    EDIT_OWN_TASKS = "edit_own_tasks"
    DELETE_OTHERS_TASKS = "delete_others_tasks"
    VIEW_AUDIT = "view_audit"


_STAFF: FrozenSet[ActionClass] = frozenset(ActionClass)

CAPABILITY_MATRIX: Dict[MemberRole, FrozenSet[ActionClass]] = {
    MemberRole.OWNER: _STAFF,
    MemberRole.ADMIN: _STAFF,
    MemberRole.MEMBER: frozenset({
        ActionClass.REORDER,
        ActionClass.EDIT_OWN_TASKS,
    }),
}


def can_mutate(role: MemberRole, action_class: ActionClass) -> bool:
    """Answer one cell of the capability matrix."""
    return action_class in CAPABILITY_MATRIX.get(MemberRole(role), frozenset())


class RoleAuthorizer:
    """
    Resolves an actor's role in a project and gates mutations.

    The project owner always resolves to ``owner``, even when the
    membership row is missing.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve_role(
        self,
        project_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
    ) -> MemberRole:
        """
        Look up the actor's role.

        Raises:
            NotAMember: no membership row and not the owner
        """
        if user_id is None:
            raise NotAMember()

        query = select(Project.owner_id).where(Project.id == project_id)
        result = await self.session.execute(query)
        if result.scalar_one_or_none() == user_id:
            return MemberRole.OWNER

        query = select(ProjectMember.role).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
        result = await self.session.execute(query)
        role = result.scalar_one_or_none()
        if role is None:
            raise NotAMember()
        return MemberRole(role)

    def can_mutate(self, role: MemberRole, action_class: ActionClass) -> bool:
        return can_mutate(role, action_class)

    async def require(
        self,
        project_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
        action_class: ActionClass,
    ) -> MemberRole:
        """Resolve the role and fail with InsufficientRole if the matrix says no."""
        role = await self.resolve_role(project_id, user_id)
        if not can_mutate(role, action_class):
            logger.info(
                "Denied %s for role %s",
                action_class.value,
                role.value,
                extra={"project_id": str(project_id)},
            )
            raise InsufficientRole()
        return role
