"""Database configuration helpers: async engine, sessions and schema setup."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from expense_tracker.config import DatabaseSettings, get_settings
from expense_tracker.services.storage.interface import ConnectionError

logger = structlog.get_logger(__name__)


def _prepare_sqlite_path(url: URL) -> None:
    """Ensure on-disk SQLite paths exist before engine creation."""
    database = url.database
    if not database or database == ":memory:":
        return

    db_path = Path(database)
    if not db_path.is_absolute():
        db_path = (Path.cwd() / db_path).resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)


def create_engine_from_settings(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine for the configured database."""
    settings = settings or get_settings().database
    parsed_url = make_url(settings.url)
    if parsed_url.drivername.startswith("sqlite"):
        _prepare_sqlite_path(parsed_url)
    return create_async_engine(settings.url, echo=settings.echo, future=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Create tables and indexes if they are missing.

    Default categories are seeded separately by the category resolver
    (see CategoryResolver.ensure_defaults).
    """
    from expense_tracker.services.storage import tables  # noqa: WPS433 (import inside function)

    try:
        async with engine.begin() as conn:
            await conn.run_sync(tables.Base.metadata.create_all)
    except SQLAlchemyError as e:
        raise ConnectionError(f"Failed to initialize database: {e}") from e

    logger.info("database_initialized", dialect=engine.dialect.name)
