"""
Database connection and session management.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from social_chair.core.config import get_settings

SessionFactory = async_sessionmaker[AsyncSession]


def create_engine(database_url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    """Create an async engine. In-memory SQLite shares one connection."""
    settings = get_settings()
    url = database_url or settings.database_url
    kwargs: dict = {"echo": settings.debug if echo is None else echo}
    if url.startswith("sqlite") and (":memory:" in url or url.endswith("://")):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables (development only; use migrations in production)."""
    import social_chair.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def session_scope(factory: SessionFactory) -> AsyncIterator[AsyncSession]:
    """Unit of work: commit on success, roll back on any error."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
