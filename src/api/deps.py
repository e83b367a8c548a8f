"""
FastAPI dependencies for authentication, database sessions and board services.
"""

from datetime import timedelta
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.database import Database
from src.kernel.audit import AuditQueryService, AuditRecorder
from src.kernel.identity.jwt import verify_access_token
from src.kernel.models.user import User
from src.kernel.ordering import PositionManager
from src.kernel.permissions import RoleAuthorizer
from src.logging_config import actor_id_var


# Security scheme
security = HTTPBearer(auto_error=False)


def get_database(request: Request) -> Database:
    """The Database handle opened by the application lifespan."""
    return request.app.state.database


async def get_db(
    database: Annotated[Database, Depends(get_database)],
) -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields database sessions."""
    async with database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
) -> User:
    """Get current authenticated user or raise 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == payload.user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    actor_id_var.set(str(user.id))
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_authorizer(db: DbSession) -> RoleAuthorizer:
    return RoleAuthorizer(db)


def get_position_manager(
    db: DbSession,
    authorizer: Annotated[RoleAuthorizer, Depends(get_authorizer)],
) -> PositionManager:
    return PositionManager(db, authorizer)


def get_audit_recorder(
    database: Annotated[Database, Depends(get_database)],
) -> AuditRecorder:
    """Recorder bound to the session factory, never to the request session."""
    settings = get_settings()
    return AuditRecorder(
        database.session_factory,
        timeout_seconds=settings.audit_timeout_seconds,
        grace_window=timedelta(seconds=settings.audit_backfill_window_seconds),
    )


def get_audit_query(db: DbSession) -> AuditQueryService:
    settings = get_settings()
    return AuditQueryService(
        db,
        default_limit=settings.audit_default_limit,
        max_limit=settings.audit_max_limit,
    )


Authorizer = Annotated[RoleAuthorizer, Depends(get_authorizer)]
Positions = Annotated[PositionManager, Depends(get_position_manager)]
Recorder = Annotated[AuditRecorder, Depends(get_audit_recorder)]
AuditQuery = Annotated[AuditQueryService, Depends(get_audit_query)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)
