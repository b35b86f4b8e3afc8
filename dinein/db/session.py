"""Database session management using SQLModel async."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

# Import all models to ensure they are registered with SQLModel metadata
import dinein.models  # noqa: F401
from dinein.config import DatabaseConfig

logger = structlog.get_logger()


def _connect_args(url: str, timeout: float) -> dict[str, Any]:
    """Driver-specific bounded connect/lock wait."""
    if url.startswith("sqlite"):
        return {"timeout": timeout}
    if url.startswith("postgresql+asyncpg"):
        return {"timeout": timeout}
    if url.startswith("mysql+aiomysql") or url.startswith("mysql+asyncmy"):
        return {"connect_timeout": int(timeout)}
    return {}


class Database:
    """Owns the async engine and session factory for one application.

    The engine is created lazily on first use so constructing a Database is
    free of I/O.
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(
                self._config.url,
                echo=self._config.echo,
                connect_args=_connect_args(
                    self._config.url, self._config.connect_timeout
                ),
            )
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._session_factory

    async def init(self) -> None:
        """Create missing tables.

        Note: In production, manage the schema with migrations instead.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("db.init", url=self._config.url.split("@")[-1])

    async def close(self) -> None:
        """Dispose the engine."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get async database session as context manager.

        Commits on clean exit, rolls back if the block raises.

        Usage:
            async with database.session() as db:
                result = await db.execute(select(Model))
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
