"""
Database configuration and session management.

Uses SQLAlchemy async with PostgreSQL (SQLite via aiosqlite for local runs
and tests).
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import Request
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from schoolerp.config import Settings
from schoolerp.errors import ConflictError

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class Database:
    """
    Owns the engine and session factory for one application instance.

    Created at startup and disposed at shutdown; components receive sessions
    from it instead of reaching for module globals.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        if settings.is_sqlite:
            self.engine: AsyncEngine = create_async_engine(
                settings.async_database_url,
                poolclass=NullPool,
            )
        else:
            self.engine = create_async_engine(
                settings.async_database_url,
                echo=False,
                pool_pre_ping=True,
                pool_size=5,
                max_overflow=10,
            )
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Context manager for database sessions outside of FastAPI.

        Usage:
            async with database.session() as db:
                user = await db.get(User, user_id)
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create missing tables (dev and test bootstrap; production uses Alembic)."""
        # Import so every model is registered on Base.metadata
        from schoolerp.db import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        async with self.session_factory() as session:
            await session.execute(text("SELECT 1"))
        return True

    async def dispose(self) -> None:
        """Close database connections."""
        await self.engine.dispose()


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database sessions.

    Usage:
        @app.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Apply every change made inside the block as one transaction.

    Commits on normal exit; rolls back and re-raises otherwise. Unique
    constraint violations surface as ``ConflictError``.

    Usage:
        async with atomic(db):
            await ledger.revoke(old_hash)
            await ledger.record_refresh_token(user.id, token, expires_at)
    """
    try:
        yield session
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.warning("Unique constraint violated", error=str(e.orig))
        raise ConflictError(
            "Unique value already exists",
            code="DUPLICATE_VALUE",
        ) from e
    except Exception:
        await session.rollback()
        raise
