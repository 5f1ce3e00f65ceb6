"""Async SQLAlchemy engine and session factory."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from renocheck.config import get_settings

_settings = get_settings()
_SQLITE_PREFIX = "sqlite+aiosqlite:///"


def _ensure_sqlite_dir(url: str) -> None:
    if url.startswith(_SQLITE_PREFIX) and ":memory:" not in url:
        Path(url.replace(_SQLITE_PREFIX, "")).parent.mkdir(parents=True, exist_ok=True)


def build_engine(url: str) -> AsyncEngine:
    """Create an engine; SQLite connections get foreign keys switched on for cascades."""
    _ensure_sqlite_dir(url)
    eng = create_async_engine(url, echo=False)
    if eng.dialect.name == "sqlite":
        @event.listens_for(eng.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    return eng


engine = build_engine(_settings.database_url)
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency that yields an async DB session."""
    async with async_session_factory() as session:
        yield session


async def init_db(eng: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    from renocheck.models import Base

    async with (eng or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
