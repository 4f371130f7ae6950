"""Async engine and sessions for the library database."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from soulfetch.config.settings import DatabaseSettings
from soulfetch.infrastructure.persistence.models import Base

logger = logging.getLogger(__name__)


def _engine_options(settings: DatabaseSettings) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.echo}
    if not settings.url.startswith("sqlite"):
        return options

    # Bookkeeping upserts come from several job tasks at once, give writers time to queue
    options["connect_args"] = {"check_same_thread": False, "timeout": 30}
    # Hey future me - every new connection to ":memory:" is a NEW empty database.
    # StaticPool keeps ONE connection so the library table survives between sessions.
    if ":memory:" in settings.url:
        options["poolclass"] = StaticPool
    return options


class Database:
    """Owns the engine; hands out one transaction per ``session_scope``."""

    def __init__(self, settings: DatabaseSettings) -> None:
        self.settings = settings
        self._engine = create_async_engine(settings.url, **_engine_options(settings))
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Commit when the block exits cleanly, roll back and re-raise otherwise."""
        async with self._sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create the library table if it is missing (no migrations, one table)."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.debug("database.tables_created", extra={"url": self.settings.url})

    async def close(self) -> None:
        await self._engine.dispose()
