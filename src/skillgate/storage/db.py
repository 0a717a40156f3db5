from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def create_engine(*, database_url: str, pool_size: int = 5) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        # Tests and local runs: sqlite picks its own pool.
        return create_async_engine(database_url)
    return create_async_engine(database_url, pool_pre_ping=True, pool_size=pool_size, max_overflow=0)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)
