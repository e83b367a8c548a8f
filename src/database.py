"""
Database connection and session management.
Uses SQLAlchemy 2.0 async pattern.

The engine lives on an explicit ``Database`` handle. The application lifespan
opens and disposes it; services receive sessions or the session factory.
"""

from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from src.config import Settings, get_settings
from src.logging_config import get_logger

logger = get_logger(__name__)


class Database:
    """
    Owns the async engine and session factory for one process.

    Usage:
        database = Database(settings.database_url)
        await database.create_all()
        async with database.session() as session:
            ...
        await database.close()
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        statement_timeout_ms: int = 10000,
        pool_timeout: int = 10,
    ):
        self.url = url
        self.is_sqlite = url.startswith("sqlite")

        if self.is_sqlite:
            # SQLite with NullPool: every session gets its own connection, avoiding
            # "cannot commit transaction – SQL statements in progress" from StaticPool.
            self.engine: AsyncEngine = create_async_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=NullPool,
            )
            busy_timeout = statement_timeout_ms

            @event.listens_for(self.engine.sync_engine, "connect")
            def _set_sqlite_pragma(dbapi_conn, connection_record):
                """Enable WAL mode + foreign keys on every new SQLite connection."""
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute(f"PRAGMA busy_timeout={busy_timeout}")
                cursor.close()
        else:
            # PostgreSQL settings with connection pooling and bounded statements
            self.engine = create_async_engine(
                url,
                echo=echo,
                pool_pre_ping=True,
                pool_size=5,
                max_overflow=10,
                pool_timeout=pool_timeout,
                connect_args={
                    "command_timeout": statement_timeout_ms / 1000,
                    "server_settings": {"statement_timeout": str(statement_timeout_ms)},
                },
            )

        # Session factory
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Database":
        settings = settings or get_settings()
        return cls(
            settings.database_url,
            echo=settings.debug,
            statement_timeout_ms=settings.db_statement_timeout_ms,
            pool_timeout=settings.db_pool_timeout,
        )

    def session(self) -> AsyncSession:
        """Open a new session (use as an async context manager)."""
        return self.session_factory()

    async def create_all(self) -> None:
        """Create tables for all registered models."""
        # Import Base from kernel models to ensure all models are registered
        from src.kernel.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        from src.kernel.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
        logger.info("Database connections closed")


async def session_scope(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that commits on success and rolls back on error."""
    async with database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
