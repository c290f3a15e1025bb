"""Async SQLAlchemy engine and session factory for the local document store."""
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import get_settings
from models.base import Base


def build_engine(database_url: str, busy_timeout: float | None = None) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite connections get a busy timeout so that concurrent writers queue on the
    file lock instead of failing immediately with "database is locked".
    """
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite") and busy_timeout is not None:
        connect_args["timeout"] = busy_timeout
    return create_async_engine(database_url, echo=False, connect_args=connect_args)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Build the session factory used by the storage layer.

    Every collection call opens its own short-lived session from this factory, so
    expire_on_commit is off to keep returned objects readable after commit.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create every collection table that does not exist yet."""
    import models  # noqa: F401  (registers all tables on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


settings = get_settings()

engine = build_engine(settings.database_url, settings.db_busy_timeout)

async_session_factory = build_session_factory(engine)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the application-wide session factory."""
    return async_session_factory
