"""Async engine and unit-of-work sessions for the token store.

Production runs on PostgreSQL through asyncpg; tests and local runs use
SQLite through aiosqlite. Every repository call happens inside
``DatabaseManager.get_async_session()``, which commits on a clean exit.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from token_scanner.storage.models import Base

logger = logging.getLogger(__name__)

_SYNC_POSTGRES = "postgresql://"
_ASYNC_POSTGRES = "postgresql+asyncpg://"


def to_async_url(database_url: str) -> str:
    """Swap a plain ``postgresql://`` URL for the asyncpg dialect."""
    if database_url.startswith(_SYNC_POSTGRES):
        logger.warning("DATABASE_URL uses %s; switching to %s", _SYNC_POSTGRES, _ASYNC_POSTGRES)
        return _ASYNC_POSTGRES + database_url[len(_SYNC_POSTGRES) :]
    return database_url


def create_async_db_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create the async engine for a token store URL."""
    return create_async_engine(to_async_url(database_url), **kwargs)


class DatabaseManager:
    """Owns the engine and hands out committed-or-rolled-back sessions.

    The engine is created lazily so constructing a manager never touches
    the network; ``check_connection`` is the explicit readiness probe.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ) -> None:
        self.database_url = database_url
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo

        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def _engine_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"echo": self._echo}
        # SQLite uses a static pool; sizing options are rejected there.
        if not self.is_sqlite:
            options.update(
                pool_size=self._pool_size,
                max_overflow=self._max_overflow,
                pool_pre_ping=True,
            )
        return options

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_db_engine(self.database_url, **self._engine_options())
        return self._engine

    @asynccontextmanager
    async def get_async_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session scoped to one unit of work.

        Commits when the block exits cleanly, rolls back and re-raises
        otherwise.
        """
        if self._sessions is None:
            self._sessions = async_sessionmaker(bind=self.engine, expire_on_commit=False)
        async with self._sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def check_connection(self) -> None:
        """Run ``SELECT 1``; raises ``SQLAlchemyError`` when the store is unreachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def init_schema_async(self) -> None:
        """Create any missing tables. Alembic owns the schema in production."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Token store schema created")

    async def dispose_async(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessions = None
            logger.info("Token store connections closed")
