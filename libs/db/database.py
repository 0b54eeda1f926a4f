"""Database setup for SQLAlchemy with async drivers (psycopg, aiosqlite)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def _enable_sqlite_foreign_keys(dbapi_conn, _record) -> None:  # pragma: no cover - driver hook
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Engine and session factory for one metadata store.

    Built once per application and handed to whoever needs sessions; there is
    no module level engine.
    """

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        if url.startswith("sqlite"):
            # one connection per session, so the engine is not tied to a loop
            self.engine: AsyncEngine = create_async_engine(url, echo=echo, poolclass=NullPool)
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        else:
            # - pool_pre_ping: validate connections before using
            # - pool_recycle: proactively recycle connections to avoid server-side timeouts
            self.engine = create_async_engine(
                url,
                echo=echo,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
        self.sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Provide a transactional scope around a series of operations."""

        async with self.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    async def init(self, max_attempts: int = 5, delay: float = 5) -> None:
        """Create tables, retrying while the database is not reachable yet."""

        # Import models to ensure Base.metadata is populated
        from . import models  # noqa: F401

        last_exc: SQLAlchemyError | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
                logger.info("DB schema ensured (attempt %d)", attempt)
                return
            except SQLAlchemyError as exc:
                last_exc = exc
                if attempt == max_attempts:
                    break
                logger.warning(
                    "DB init attempt %d failed: %s. Retrying in %ss", attempt, exc, delay
                )
                await asyncio.sleep(delay)

        logger.error("DB init failed after %d attempts", max_attempts)
        if last_exc is not None:
            raise last_exc

    async def dispose(self) -> None:
        await self.engine.dispose()


__all__ = ["Base", "Database"]
