"""
Best-effort recorder for the append-only audit trail.

Appends run in their own short transaction on a fresh session, after the
primary mutation has committed. A failed or slow append is logged and
dropped; it never reaches the caller and never rolls anything back.
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.kernel.audit.entries import AuditEntry, to_jsonable
from src.kernel.models.audit_log import AuditAction, AuditLog, EntityType
from src.kernel.models.base import enum_value, utcnow
from src.logging_config import get_logger, get_request_id

logger = get_logger(__name__)

DEFAULT_GRACE_WINDOW = timedelta(seconds=5)
DEFAULT_TIMEOUT_SECONDS = 3.0


class AuditRecorder:
    """
    Appends audit rows and attributes late actors.

    Usage:
        recorder = AuditRecorder(database.session_factory)
        await recorder.append(
            project_id=project.id,
            user_id=None,
            action=AuditAction.COLUMN_CREATED,
            entity_type=EntityType.COLUMN,
            entity_id=column.id,
            details={"column_name": column.name, "position": column.position},
        )
        # ...once the actor is known
        await recorder.backfill_actor(project.id, EntityType.COLUMN, column.id, user.id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        grace_window: timedelta = DEFAULT_GRACE_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.timeout_seconds = timeout_seconds
        self.grace_window = grace_window
        self.clock = clock

    async def append(
        self,
        project_id: Optional[uuid.UUID],
        user_id: Optional[uuid.UUID],
        action: AuditAction,
        entity_type: EntityType,
        entity_id: Optional[uuid.UUID] = None,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Insert one audit row. Never raises."""
        try:
            row = AuditLog(
                project_id=project_id,
                user_id=user_id,
                action=enum_value(action),
                entity_type=enum_value(entity_type),
                entity_id=entity_id,
                details=to_jsonable(details or {}),
                correlation_id=correlation_id or get_request_id(),
                created_at=self.clock(),
            )
            await asyncio.wait_for(self._insert(row), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Audit append timed out after %.1fs: %s",
                self.timeout_seconds,
                enum_value(action),
                extra={"project_id": str(project_id), "entity_id": str(entity_id)},
            )
        except Exception:
            logger.exception(
                "Error logging audit: %s",
                enum_value(action),
                extra={"project_id": str(project_id), "entity_id": str(entity_id)},
            )

    async def record(self, entries: Iterable[AuditEntry]) -> None:
        """Append a batch of entries, one row each."""
        for entry in entries:
            await self.append(
                project_id=entry.project_id,
                user_id=entry.user_id,
                action=entry.action,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                details=entry.details,
                correlation_id=entry.correlation_id,
            )

    async def backfill_actor(
        self,
        project_id: uuid.UUID,
        entity_type: EntityType,
        entity_id: Optional[uuid.UUID],
        user_id: uuid.UUID,
        correlation_id: Optional[str] = None,
    ) -> int:
        """
        Attribute recent null-actor rows for one entity to ``user_id``.

        Only rows created inside the grace window are touched. Every match
        is updated, so several unattributed rows for the same entity in the
        window all receive this actor. Passing ``correlation_id`` narrows the
        match to rows written by that request.

        Returns:
            Number of rows updated (0 when the update failed)
        """
        cutoff = self.clock() - self.grace_window
        stmt = (
            update(AuditLog)
            .where(
                AuditLog.project_id == project_id,
                AuditLog.entity_type == enum_value(entity_type),
                AuditLog.user_id.is_(None),
                AuditLog.created_at > cutoff,
            )
            .values(user_id=user_id)
            .execution_options(synchronize_session=False)
        )
        if entity_id is None:
            stmt = stmt.where(AuditLog.entity_id.is_(None))
        else:
            stmt = stmt.where(AuditLog.entity_id == entity_id)
        if correlation_id is not None:
            stmt = stmt.where(AuditLog.correlation_id == correlation_id)

        try:
            return await asyncio.wait_for(self._execute(stmt), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Audit backfill timed out after %.1fs",
                self.timeout_seconds,
                extra={"project_id": str(project_id), "entity_id": str(entity_id)},
            )
        except Exception:
            logger.exception(
                "Error updating audit user",
                extra={"project_id": str(project_id), "entity_id": str(entity_id)},
            )
        return 0

    async def _insert(self, row: AuditLog) -> None:
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()

    async def _execute(self, stmt) -> int:
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0


# Convenience functions matching the collaborator call names

async def log_audit(
    session_factory: async_sessionmaker[AsyncSession],
    project_id: Optional[uuid.UUID],
    user_id: Optional[uuid.UUID],
    action: AuditAction,
    entity_type: EntityType,
    entity_id: Optional[uuid.UUID] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Append one audit row, swallowing failures."""
    await AuditRecorder(session_factory).append(
        project_id, user_id, action, entity_type, entity_id, details
    )


async def update_recent_audit_user(
    session_factory: async_sessionmaker[AsyncSession],
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    entity_type: EntityType,
    entity_id: Optional[uuid.UUID],
) -> int:
    """Attribute null-actor rows for an entity written in the last 5 seconds."""
    return await AuditRecorder(session_factory).backfill_actor(
        project_id, entity_type, entity_id, user_id
    )
