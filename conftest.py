"""Shared pytest fixtures for bulk data loader tests."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import get_settings
from app.core.database import Base
from app.main import app


@pytest.fixture
async def client():
    """Create async HTTP client for testing FastAPI endpoints.

    The application lifespan is not run, so no worker pool is attached to
    app.state; tests override get_worker_pool where they need one.
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def db_session_maker():
    """Create a session maker bound to a freshly created schema.

    Requires PostgreSQL to be running (docker-compose up -d). Tables are
    dropped again after the test.
    """
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(db_session_maker):
    """Create async database session for integration tests."""
    async with db_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
