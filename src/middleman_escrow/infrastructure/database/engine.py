"""Async database engine and session management.

Provides:
    - Database: owns one async engine and its session factory. It is built
      once (from settings in the app lifespan, or directly in tests) and
      passed to every service; there are no module-level connection handles.
    - Database.transaction(): one unit of work. Commits on success, rolls back
      on error, and translates driver/pool failures into StorageUnavailableError.

Usage:
    database = Database.from_settings(get_settings())
    async with database.transaction() as session:
        ...
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import exc as sa_exc
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from middleman_escrow.domain.exceptions import StorageUnavailableError
from middleman_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from middleman_escrow.config import Settings

logger = get_logger(__name__)


def _is_transient(exc: BaseException) -> bool:
    """True for failures that mean "the store is unreachable right now"."""
    if isinstance(exc, (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError)):
        return True
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (asyncio.TimeoutError, ConnectionError))


class Database:
    """Async engine plus session factory for one database URL."""

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        statement_timeout_seconds: float = 10.0,
        echo: bool = False,
    ) -> None:
        engine_kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
        if url.startswith("sqlite"):
            # sqlite3 busy timeout bounds how long a writer waits for the lock
            engine_kwargs["connect_args"] = {"timeout": statement_timeout_seconds}
        else:
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                connect_args={"command_timeout": statement_timeout_seconds},
            )

        self.url = url
        self.engine = create_async_engine(url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info(
            "database.engine_created",
            dialect=self.engine.dialect.name,
            pool_size=pool_size if not url.startswith("sqlite") else None,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            statement_timeout_seconds=settings.db_statement_timeout_seconds,
            echo=settings.db_echo_sql,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a session bound to a single transaction.

        Domain errors raised inside the block roll back and propagate unchanged.
        Connectivity and timeout failures surface as StorageUnavailableError.
        """
        try:
            async with self._session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except BaseException:
                    await session.rollback()
                    raise
        except Exception as exc:
            if _is_transient(exc):
                logger.warning("database.unavailable", error=str(exc))
                raise StorageUnavailableError(str(exc)) from exc
            raise

    async def create_all(self) -> None:
        """Create tables if they don't exist. Development and tests only."""
        from middleman_escrow.infrastructure.database.orm_models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.tables_created")

    async def ping(self) -> None:
        """Run a trivial query; raises StorageUnavailableError when unreachable."""
        async with self.transaction() as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        """Dispose of the engine. Called during FastAPI's lifespan shutdown."""
        await self.engine.dispose()
        logger.info("database.engine_disposed")
