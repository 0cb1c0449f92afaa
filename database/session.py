"""
Async engine and session scope for the SQL repositories.

Driver mapping (plain URLs in settings.yaml are upgraded automatically):
  postgresql:// | postgres://  → postgresql+asyncpg://   (extra: postgres)
  mysql://                     → mysql+aiomysql://       (extra: mysql)
  sqlite://                    → sqlite+aiosqlite://

Connection pool size follows the worker pool: each worker holds at most
one session at a time, submitters need a few more.

Usage:
    await init_db("sqlite:///./notify.db")   # once at startup, creates tables
    async with get_session() as db:          # one short transaction
        row = await db.get(JobRow, job_id)
    await close_db()                         # at shutdown
"""
from __future__ import annotations

import structlog
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker,
)

from config.settings import get_settings
from database.models import Base

logger = structlog.get_logger()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "mysql": "mysql+aiomysql",
    "mysql+pymysql": "mysql+aiomysql",
    "sqlite": "sqlite+aiosqlite",
}


def _to_async_url(db_url: str) -> str:
    """Swap a sync driver prefix for its async equivalent; other URLs pass through."""
    scheme, sep, rest = db_url.partition("://")
    if not sep or scheme not in _ASYNC_DRIVERS:
        return db_url
    return f"{_ASYNC_DRIVERS[scheme]}://{rest}"


def _engine_kwargs(url: URL, echo: bool = False, workers: int = 5) -> dict:
    if url.get_backend_name() == "sqlite":
        return {"echo": echo, "connect_args": {"check_same_thread": False}}

    return {
        "echo": echo,
        "pool_size": workers + 2,
        "max_overflow": workers,
        "pool_timeout": 30,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    }


def _ensure_sqlite_dir(url: URL) -> None:
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def get_engine(db_url: Optional[str] = None) -> AsyncEngine:
    """Return the process-wide engine, creating it from db_url or settings."""
    global _engine
    if _engine is None:
        settings = get_settings()
        url = make_url(_to_async_url(db_url or settings.database.url))
        _ensure_sqlite_dir(url)
        _engine = create_async_engine(
            url, **_engine_kwargs(url, echo=settings.debug, workers=settings.queue.worker_count),
        )
        logger.info("database_engine_created",
                    dialect=_engine.dialect.name,
                    url=url.render_as_string(hide_password=True))
    return _engine


def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Commit on clean exit, roll back and re-raise otherwise."""
    async with _get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(db_url: Optional[str] = None) -> None:
    """Create the job and template tables if they do not exist yet."""
    engine = get_engine(db_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized",
                dialect=engine.dialect.name,
                tables=sorted(Base.metadata.tables))


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("database_closed")
