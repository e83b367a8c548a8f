"""
Ordering of columns within a project and tasks within a column.

Every public mutation is one store transaction: committed on success,
rolled back on any exception, so readers see either the old sequence or
the new one. Positions are rewritten in two phases through negative
values, which keeps UNIQUE(scope, position) satisfied statement by
statement on PostgreSQL and SQLite alike. Committed positions are always
non-negative; -1 is reserved for a task parked mid-move.
"""

import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.audit.entries import AuditEntry
from src.kernel.errors import (
    ColumnNotEmpty,
    ColumnNotFound,
    CrossProjectMoveRejected,
    InvalidReorderSet,
    ProjectNotFound,
    TaskNotFound,
)
from src.kernel.models.audit_log import AuditAction, EntityType
from src.kernel.models.base import enum_value
from src.kernel.models.board import Task, TaskColumn, TaskPriority
from src.kernel.models.project import MemberRole, Project
from src.kernel.permissions.role_authorizer import ActionClass, RoleAuthorizer
from src.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

PARKED = -1

DEFAULT_COLUMNS = [
    {"name": "To Do", "color": "#6B7280"},
    {"name": "In Progress", "color": "#3B82F6"},
    {"name": "Review", "color": "#F59E0B"},
    {"name": "Done", "color": "#10B981"},
]

# Task fields that update_task may change directly
EDITABLE_TASK_FIELDS = ("title", "description", "priority", "tags", "due_date", "assignee_id")


@dataclass
class Outcome(Generic[T]):
    """Result of a mutation plus the audit entries describing it."""

    value: T
    audit: List[AuditEntry] = field(default_factory=list)


class PositionManager:
    """
    Keeps column and task positions strictly ordered and unique.

    Usage:
        manager = PositionManager(session)
        outcome = await manager.reorder_columns(project_id, [b.id, c.id, a.id], actor_id=user.id)
        background_tasks.add_task(recorder.record, outcome.audit)
    """

    def __init__(self, session: AsyncSession, authorizer: Optional[RoleAuthorizer] = None):
        self.session = session
        self.authorizer = authorizer or RoleAuthorizer(session)

    # ------------------------------------------------------------------
    # Reads

    async def list_columns(self, project_id: uuid.UUID) -> List[TaskColumn]:
        query = (
            select(TaskColumn)
            .where(TaskColumn.project_id == project_id)
            .order_by(TaskColumn.position)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_tasks(self, project_id: uuid.UUID) -> List[Task]:
        """All tasks of a project in render order (column, then task position)."""
        query = (
            select(Task)
            .join(TaskColumn, Task.column_id == TaskColumn.id)
            .where(Task.project_id == project_id)
            .order_by(TaskColumn.position, Task.position)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_column_tasks(self, column_id: uuid.UUID) -> List[Task]:
        query = (
            select(Task)
            .where(Task.column_id == column_id)
            .order_by(Task.position)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_column(self, column_id: uuid.UUID, *, lock: bool = False) -> TaskColumn:
        query = (
            select(TaskColumn)
            .where(TaskColumn.id == column_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()
        column = (await self.session.execute(query)).scalar_one_or_none()
        if column is None:
            raise ColumnNotFound()
        return column

    async def get_task(self, task_id: uuid.UUID, *, lock: bool = False) -> Task:
        query = (
            select(Task)
            .where(Task.id == task_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()
        task = (await self.session.execute(query)).scalar_one_or_none()
        if task is None:
            raise TaskNotFound()
        return task

    # ------------------------------------------------------------------
    # Columns

    async def seed_default_columns(self, project_id: uuid.UUID) -> Outcome[List[TaskColumn]]:
        """
        Create the default columns of a new project.

        System action: runs inside the caller's transaction, is not gated,
        and its audit entries carry no actor.
        """
        columns = []
        for position, preset in enumerate(DEFAULT_COLUMNS):
            column = TaskColumn(project_id=project_id, position=position, **preset)
            self.session.add(column)
            columns.append(column)
        await self.session.flush()

        audit = [
            AuditEntry(
                project_id=project_id,
                action=AuditAction.COLUMN_CREATED,
                entity_type=EntityType.COLUMN,
                entity_id=column.id,
                details={"column_name": column.name, "position": column.position},
            )
            for column in columns
        ]
        return Outcome(columns, audit)

    async def insert_column(
        self,
        project_id: uuid.UUID,
        name: str,
        actor_id: Optional[uuid.UUID],
        position: Optional[int] = None,
        color: Optional[str] = None,
    ) -> Outcome[TaskColumn]:
        """
        Add a column.

        Without ``position`` the column is appended after the current last
        one. With it, every column at or after that position moves up by one
        first.
        """
        async with self._transaction():
            await self.authorizer.require(project_id, actor_id, ActionClass.MANAGE_COLUMNS)
            await self._lock_project(project_id)
            scope = TaskColumn.project_id == project_id

            shifted: List[Tuple[uuid.UUID, str, int]] = []
            if position is None:
                position = await self._next_position(TaskColumn, scope)
            else:
                position = max(position, 0)
                shifted = await self._shift_up(TaskColumn, scope, position)

            values: Dict[str, Any] = {"project_id": project_id, "name": name, "position": position}
            if color:
                values["color"] = color
            column = TaskColumn(**values)
            self.session.add(column)
            await self.session.flush()

            audit = [
                AuditEntry(
                    project_id=project_id,
                    action=AuditAction.COLUMN_CREATED,
                    entity_type=EntityType.COLUMN,
                    entity_id=column.id,
                    user_id=actor_id,
                    details={"column_name": name, "position": position},
                ),
            ]
            audit.extend(
                self._moved_entries(project_id, actor_id, EntityType.COLUMN, AuditAction.COLUMN_MOVED, shifted)
            )

        await self.session.refresh(column)
        return Outcome(column, audit)

    async def update_column(
        self,
        column_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        name: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Outcome[TaskColumn]:
        """Rename or recolour a column. Position is changed only by reorders."""
        async with self._transaction():
            column = await self.get_column(column_id, lock=True)
            await self.authorizer.require(column.project_id, actor_id, ActionClass.MANAGE_COLUMNS)

            audit = []
            if name is not None and name != column.name:
                audit.append(AuditEntry(
                    project_id=column.project_id,
                    action=AuditAction.COLUMN_RENAMED,
                    entity_type=EntityType.COLUMN,
                    entity_id=column.id,
                    user_id=actor_id,
                    details={"old_name": column.name, "new_name": name},
                ))
                column.name = name
            if color is not None and color != column.color:
                audit.append(AuditEntry(
                    project_id=column.project_id,
                    action=AuditAction.COLUMN_UPDATED,
                    entity_type=EntityType.COLUMN,
                    entity_id=column.id,
                    user_id=actor_id,
                    details={"column_name": column.name, "old_color": column.color, "new_color": color},
                ))
                column.color = color
            await self.session.flush()

        return Outcome(column, audit)

    async def delete_column(
        self,
        column_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
    ) -> Outcome[TaskColumn]:
        """
        Delete an empty column. Remaining positions are not compacted.

        Raises:
            ColumnNotEmpty: the column still holds tasks
        """
        async with self._transaction():
            column = await self.get_column(column_id, lock=True)
            await self.authorizer.require(column.project_id, actor_id, ActionClass.MANAGE_COLUMNS)

            count = (await self.session.execute(
                select(func.count(Task.id)).where(Task.column_id == column_id)
            )).scalar() or 0
            if count > 0:
                raise ColumnNotEmpty(column_id=str(column_id), task_count=count)

            await self.session.execute(delete(TaskColumn).where(TaskColumn.id == column_id))
            audit = [AuditEntry(
                project_id=column.project_id,
                action=AuditAction.COLUMN_DELETED,
                entity_type=EntityType.COLUMN,
                entity_id=column.id,
                user_id=actor_id,
                details={"column_name": column.name, "position": column.position},
            )]

        return Outcome(column, audit)

    async def reorder_columns(
        self,
        project_id: uuid.UUID,
        ordered_ids: Sequence[uuid.UUID],
        actor_id: Optional[uuid.UUID],
    ) -> Outcome[List[TaskColumn]]:
        """
        Rewrite column positions to 0..n-1 in the given order.

        Raises:
            InvalidReorderSet: ids differ from the project's current columns
        """
        async with self._transaction():
            await self.authorizer.require(project_id, actor_id, ActionClass.REORDER)
            await self._lock_project(project_id)
            scope = TaskColumn.project_id == project_id

            current = await self.list_columns(project_id)
            self._validate_reorder_set([c.id for c in current], ordered_ids)
            if not current:
                return Outcome([], [])

            before = {c.id: (c.name, c.position) for c in current}
            await self._rewrite_positions(TaskColumn, scope, ordered_ids)
            columns = await self.list_columns(project_id)

            audit = [
                AuditEntry(
                    project_id=project_id,
                    action=AuditAction.COLUMN_MOVED,
                    entity_type=EntityType.COLUMN,
                    entity_id=c.id,
                    user_id=actor_id,
                    details={
                        "column_name": c.name,
                        "old_position": before[c.id][1],
                        "new_position": c.position,
                    },
                )
                for c in columns
                if before[c.id][1] != c.position
            ]

        logger.info("Columns reordered", extra={"project_id": str(project_id), "count": len(columns)})
        return Outcome(columns, audit)

    # ------------------------------------------------------------------
    # Tasks

    async def create_task(
        self,
        column_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        title: str,
        *,
        project_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        tags: Optional[List[str]] = None,
        due_date: Optional[datetime] = None,
        assignee_id: Optional[uuid.UUID] = None,
    ) -> Outcome[Task]:
        """Append a new task at the end of a column."""
        async with self._transaction():
            column = await self.get_column(column_id, lock=True)
            if project_id is not None and project_id != column.project_id:
                raise CrossProjectMoveRejected("Column belongs to a different project")
            await self.authorizer.require(column.project_id, actor_id, ActionClass.EDIT_OWN_TASKS)

            position = await self._next_position(Task, Task.column_id == column_id)
            task = Task(
                project_id=column.project_id,
                column_id=column_id,
                title=title,
                description=description,
                priority=enum_value(priority),
                tags=list(tags or []),
                due_date=due_date,
                assignee_id=assignee_id,
                position=position,
                created_by=actor_id,
            )
            self.session.add(task)
            await self.session.flush()

            audit = [AuditEntry(
                project_id=column.project_id,
                action=AuditAction.TASK_CREATED,
                entity_type=EntityType.TASK,
                entity_id=task.id,
                user_id=actor_id,
                details={"task_title": title, "column_id": column_id, "priority": enum_value(priority)},
            )]

        await self.session.refresh(task)
        return Outcome(task, audit)

    async def move_task(
        self,
        task_id: uuid.UUID,
        target_column_id: uuid.UUID,
        target_position: Optional[int],
        actor_id: Optional[uuid.UUID],
    ) -> Outcome[Task]:
        """
        Move a task to ``target_position`` inside ``target_column_id``.

        ``target_position`` indexes the target column's tasks with the moved
        task taken out; past the end (or None) appends, negative means first.
        Later tasks move up by one. The gap left in the source column is
        not closed.

        Raises:
            CrossProjectMoveRejected: target column is in another project
        """
        async with self._transaction():
            task, audit = await self._move(task_id, target_column_id, target_position, actor_id)
        return Outcome(task, audit)

    async def update_task(
        self,
        task_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        changes: Dict[str, Any],
        *,
        target_column_id: Optional[uuid.UUID] = None,
        target_position: Optional[int] = None,
    ) -> Outcome[Task]:
        """
        Edit task fields and, when a column or position is given, move it.

        Field edits and the move commit together. Naming the task's current
        column without a position keeps the task where it is.
        """
        async with self._transaction():
            task = await self.get_task(task_id, lock=True)
            await self.authorizer.require(task.project_id, actor_id, ActionClass.EDIT_OWN_TASKS)
            audit = self._apply_task_changes(task, actor_id, changes)
            await self.session.flush()

            changes_column = target_column_id is not None and target_column_id != task.column_id
            if changes_column or target_position is not None:
                task, moved = await self._move(
                    task_id,
                    target_column_id or task.column_id,
                    target_position,
                    actor_id,
                )
                audit.extend(moved)

        return Outcome(task, audit)

    async def reorder_tasks_in_column(
        self,
        column_id: uuid.UUID,
        ordered_ids: Sequence[uuid.UUID],
        actor_id: Optional[uuid.UUID],
    ) -> Outcome[List[Task]]:
        """
        Rewrite task positions in one column to 0..n-1 in the given order.

        Raises:
            InvalidReorderSet: ids differ from the column's current tasks
        """
        async with self._transaction():
            column = await self.get_column(column_id, lock=True)
            await self.authorizer.require(column.project_id, actor_id, ActionClass.REORDER)

            current = await self.list_column_tasks(column_id)
            self._validate_reorder_set([t.id for t in current], ordered_ids)
            if not current:
                return Outcome([], [])

            before = {t.id: t.position for t in current}
            await self._rewrite_positions(Task, Task.column_id == column_id, ordered_ids)
            tasks = await self.list_column_tasks(column_id)

            audit = [
                AuditEntry(
                    project_id=column.project_id,
                    action=AuditAction.TASK_REORDERED,
                    entity_type=EntityType.TASK,
                    entity_id=t.id,
                    user_id=actor_id,
                    details={
                        "task_title": t.title,
                        "column_id": column_id,
                        "old_position": before[t.id],
                        "new_position": t.position,
                    },
                )
                for t in tasks
                if before[t.id] != t.position
            ]

        return Outcome(tasks, audit)

    async def delete_task(
        self,
        task_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
    ) -> Outcome[Task]:
        """
        Delete a task. Members may delete only tasks they created.

        Raises:
            InsufficientRole: a member deleting someone else's task
        """
        async with self._transaction():
            task = await self.get_task(task_id, lock=True)
            own = actor_id is not None and task.created_by == actor_id
            action_class = ActionClass.EDIT_OWN_TASKS if own else ActionClass.DELETE_OTHERS_TASKS
            await self.authorizer.require(task.project_id, actor_id, action_class)

            await self.session.execute(delete(Task).where(Task.id == task_id))
            audit = [AuditEntry(
                project_id=task.project_id,
                action=AuditAction.TASK_DELETED,
                entity_type=EntityType.TASK,
                entity_id=task.id,
                user_id=actor_id,
                details={"task_title": task.title, "column_id": task.column_id},
            )]

        return Outcome(task, audit)

    # ------------------------------------------------------------------
    # Internals

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def _lock_project(self, project_id: uuid.UUID) -> None:
        """Serialize writers of one project's column sequence."""
        query = select(Project.id).where(Project.id == project_id).with_for_update()
        if (await self.session.execute(query)).scalar_one_or_none() is None:
            raise ProjectNotFound()

    async def _lock_columns(self, column_ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, TaskColumn]:
        """Lock columns in id order so concurrent movers cannot deadlock."""
        query = (
            select(TaskColumn)
            .where(TaskColumn.id.in_(set(column_ids)))
            .order_by(TaskColumn.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return {c.id: c for c in result.scalars().all()}

    async def _move(
        self,
        task_id: uuid.UUID,
        target_column_id: uuid.UUID,
        target_position: Optional[int],
        actor_id: Optional[uuid.UUID],
    ) -> Tuple[Task, List[AuditEntry]]:
        task = await self.get_task(task_id)
        source_column_id = task.column_id

        columns = await self._lock_columns([source_column_id, target_column_id])
        target = columns.get(target_column_id)
        if target is None:
            raise ColumnNotFound()
        if target.project_id != task.project_id:
            raise CrossProjectMoveRejected(
                task_id=str(task_id),
                target_column_id=str(target_column_id),
            )
        await self.authorizer.require(task.project_id, actor_id, ActionClass.REORDER)

        task = await self.get_task(task_id, lock=True)
        if task.column_id != source_column_id:
            raise InvalidReorderSet("Task was moved concurrently; reload and retry")
        old_position = task.position

        await self._set_position(task_id, PARKED)
        siblings = (await self.session.execute(
            select(Task.position)
            .where(Task.column_id == target_column_id, Task.id != task_id, Task.position >= 0)
            .order_by(Task.position)
        )).scalars().all()

        count = len(siblings)
        index = count if target_position is None else min(max(target_position, 0), count)
        if index == count:
            new_position = siblings[-1] + 1 if siblings else 0
        else:
            new_position = siblings[index]
            await self._shift_up(Task, Task.column_id == target_column_id, new_position, exclude_id=task_id)

        await self.session.execute(
            update(Task)
            .where(Task.id == task_id)
            .values(column_id=target_column_id, position=new_position)
            .execution_options(synchronize_session=False)
        )
        task = await self.get_task(task_id)

        audit = []
        if source_column_id != target_column_id:
            audit.append(AuditEntry(
                project_id=task.project_id,
                action=AuditAction.TASK_MOVED,
                entity_type=EntityType.TASK,
                entity_id=task.id,
                user_id=actor_id,
                details={
                    "task_title": task.title,
                    "old_column_id": source_column_id,
                    "new_column_id": target_column_id,
                    "old_position": old_position,
                    "new_position": new_position,
                },
            ))
        elif old_position != new_position:
            audit.append(AuditEntry(
                project_id=task.project_id,
                action=AuditAction.TASK_REORDERED,
                entity_type=EntityType.TASK,
                entity_id=task.id,
                user_id=actor_id,
                details={
                    "task_title": task.title,
                    "column_id": target_column_id,
                    "old_position": old_position,
                    "new_position": new_position,
                },
            ))
        return task, audit

    def _apply_task_changes(
        self,
        task: Task,
        actor_id: Optional[uuid.UUID],
        changes: Dict[str, Any],
    ) -> List[AuditEntry]:
        audit = []

        def entry(action: AuditAction, details: Dict[str, Any]) -> AuditEntry:
            return AuditEntry(
                project_id=task.project_id,
                action=action,
                entity_type=EntityType.TASK,
                entity_id=task.id,
                user_id=actor_id,
                details=details,
            )

        other_fields = []
        for name in EDITABLE_TASK_FIELDS:
            if name not in changes:
                continue
            new = changes[name]
            if name == "priority" and new is not None:
                new = enum_value(new)
            old = getattr(task, name)
            if name == "priority":
                old = enum_value(old)
            if new == old or (new is None and name in ("title", "priority", "tags")):
                continue

            if name == "title":
                audit.append(entry(AuditAction.TASK_UPDATED, {"old_title": old, "new_title": new}))
            elif name == "priority":
                audit.append(entry(AuditAction.TASK_PRIORITY_CHANGED, {
                    "task_title": task.title, "old_priority": old, "new_priority": new,
                }))
            elif name == "assignee_id":
                action = AuditAction.TASK_ASSIGNED if new is not None else AuditAction.TASK_UNASSIGNED
                audit.append(entry(action, {
                    "task_title": task.title, "old_assignee_id": old, "new_assignee_id": new,
                }))
            else:
                other_fields.append(name)
            setattr(task, name, new)

        if other_fields:
            audit.append(entry(AuditAction.TASK_UPDATED, {
                "task_title": task.title, "fields_changed": other_fields,
            }))
        return audit

    @staticmethod
    def _validate_reorder_set(
        current_ids: Sequence[uuid.UUID],
        ordered_ids: Sequence[uuid.UUID],
    ) -> None:
        submitted = set(ordered_ids)
        existing = set(current_ids)
        if len(submitted) != len(ordered_ids) or submitted != existing:
            raise InvalidReorderSet(
                missing=sorted(str(i) for i in existing - submitted),
                unexpected=sorted(str(i) for i in submitted - existing),
                duplicates=len(ordered_ids) - len(submitted),
            )

    async def _next_position(self, model, scope) -> int:
        query = select(func.coalesce(func.max(model.position), -1) + 1).where(scope)
        return (await self.session.execute(query)).scalar_one()

    async def _set_position(self, item_id: uuid.UUID, position: int) -> None:
        await self.session.execute(
            update(Task)
            .where(Task.id == item_id)
            .values(position=position)
            .execution_options(synchronize_session=False)
        )

    async def _shift_up(
        self,
        model,
        scope,
        from_position: int,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> List[Tuple[uuid.UUID, str, int]]:
        """
        Add one to every position >= from_position within ``scope``.

        Returns (id, label, old_position) for each shifted row.
        """
        conditions = [scope, model.position >= from_position]
        if exclude_id is not None:
            conditions.append(model.id != exclude_id)

        label = model.name if model is TaskColumn else model.title
        rows = (await self.session.execute(
            select(model.id, label, model.position).where(*conditions)
        )).all()
        if not rows:
            return []

        # p -> -p-2 (all <= -2, clear of live rows and the parked slot), then back as p+1
        await self.session.execute(
            update(model)
            .where(*conditions)
            .values(position=-model.position - 2)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            update(model)
            .where(scope, model.position < PARKED)
            .values(position=-model.position - 1)
            .execution_options(synchronize_session=False)
        )
        return [(row[0], row[1], row[2]) for row in rows]

    async def _rewrite_positions(self, model, scope, ordered_ids: Sequence[uuid.UUID]) -> None:
        """Set positions to list indexes: first to -(i+2), then flip to i."""
        for index, item_id in enumerate(ordered_ids):
            result = await self.session.execute(
                update(model)
                .where(model.id == item_id, scope)
                .values(position=-(index + 2))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidReorderSet("Sequence changed concurrently; reload and retry")

        await self.session.execute(
            update(model)
            .where(scope, model.position < PARKED)
            .values(position=-model.position - 2)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _moved_entries(
        project_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        entity_type: EntityType,
        action: AuditAction,
        shifted: List[Tuple[uuid.UUID, str, int]],
    ) -> List[AuditEntry]:
        key = "column_name" if entity_type == EntityType.COLUMN else "task_title"
        return [
            AuditEntry(
                project_id=project_id,
                action=action,
                entity_type=entity_type,
                entity_id=item_id,
                user_id=actor_id,
                details={key: label, "old_position": old, "new_position": old + 1},
            )
            for item_id, label, old in shifted
        ]
