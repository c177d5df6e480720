from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from flow_sync.config import settings
from flow_sync.db_urls import ensure_sqlite_parent_dir, normalize_database_url_for_async


def _create_async_engine(database_url: str) -> AsyncEngine:
    ensure_sqlite_parent_dir(database_url)
    url = normalize_database_url_for_async(database_url)
    return create_async_engine(url, echo=False, pool_pre_ping=True)


@lru_cache(maxsize=4)
def _engine_for_url(database_url: str) -> AsyncEngine:
    return _create_async_engine(database_url)


def get_engine() -> AsyncEngine:
    # Keyed on the URL so tests can point settings.database_url at a fresh file.
    return _engine_for_url(settings.database_url)


def reset_engine_cache() -> None:
    _engine_for_url.cache_clear()


async def dispose_engine_cache() -> None:
    # Close pooled aiosqlite connections so their worker threads don't outlive the loop.
    engine = get_engine()
    await engine.dispose()
    reset_engine_cache()


async def init_db() -> None:
    # Local/test fallback; real deployments run the Alembic migrations.
    from flow_sync import models  # noqa: F401  # register tables on SQLModel.metadata

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    session_maker = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session
