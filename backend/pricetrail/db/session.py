"""Async database session and engine configuration."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pricetrail.config import settings


def create_engine_from_url(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine, enabling FK enforcement on SQLite.

    SQLite ignores ON DELETE CASCADE unless foreign_keys is switched on
    for every connection.
    """
    is_sqlite = url.startswith("sqlite")

    engine_kwargs: dict = {"echo": settings.DEBUG}
    # SQLite doesn't support pool_size / max_overflow / pool_pre_ping
    if not is_sqlite:
        engine_kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
    engine_kwargs.update(kwargs)

    new_engine = create_async_engine(url, **engine_kwargs)

    if is_sqlite:
        @event.listens_for(new_engine.sync_engine, "connect")
        def _enable_sqlite_fks(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = create_engine_from_url(settings.DATABASE_URL)

async_session_factory = create_session_factory(engine)


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Open one unit of work.

    Uncommitted work is rolled back on error and the session is always
    closed, so callers never hold a connection past the block.
    """
    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
