"""Async SQLAlchemy 2.0 database setup.

One engine serves both the HTTP handlers and the background ingestion jobs.
Each running job holds two sessions (job bookkeeping and data writes), so
the connection pool is sized from ``ingest_max_concurrent_jobs``.
"""

from collections.abc import AsyncGenerator
from datetime import datetime
from functools import lru_cache

from sqlalchemy import DateTime, func
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.core.config import get_settings

SESSIONS_PER_JOB = 2
REQUEST_CONNECTIONS = 5


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""

    pass


class TimestampMixin:
    """created_at and updated_at columns for catalog and job tables.

    ``onupdate`` only fires for ORM updates. Bulk upserts set ``updated_at``
    themselves in their ``ON CONFLICT DO UPDATE`` clause.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def pool_size_for(max_concurrent_jobs: int) -> int:
    """Connections needed to run every job slot alongside request traffic."""
    return max_concurrent_jobs * SESSIONS_PER_JOB + REQUEST_CONNECTIONS


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the shared async engine from settings."""
    settings = get_settings()
    engine: AsyncEngine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=pool_size_for(settings.ingest_max_concurrent_jobs),
    )
    return engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory for ingestion jobs; objects stay usable after commit."""
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session dependency.

    Commits when the handler returns and rolls back if it raises.
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
