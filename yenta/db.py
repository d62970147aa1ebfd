"""Async engine and session factory for prospects and qualification rounds.

The URL comes from `DB_URL`. Postgres (asyncpg) engines get a connection pool
sized by `DB_POOL_SIZE` and `DB_MAX_OVERFLOW`; SQLite URLs, used by the tests
and local runs, skip those options because aiosqlite does not take them.
"""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import settings


_pool_options = (
    {}
    if settings.db.url.startswith("sqlite")
    else {"pool_size": settings.db.pool_size, "max_overflow": settings.db.max_overflow}
)

engine: AsyncEngine = create_async_engine(settings.db.url, echo=settings.db.echo, future=True, **_pool_options)

AsyncSessionMaker = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI-friendly async session dependency.

    Usage:
        async def endpoint(session: AsyncSession = Depends(get_session)):
            ...
    """

    async with AsyncSessionMaker() as session:
        yield session
