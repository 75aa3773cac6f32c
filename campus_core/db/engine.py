"""Async SQLAlchemy engine and unit-of-work sessions.

With DATABASE_URL set, every request and every worker task gets one
session, and everything it writes commits or rolls back as a unit.  A seat
claim locks the license row (SELECT ... FOR UPDATE), bumps the counter and
writes the assignment on that session, so the counter and the assignment
rows cannot drift apart.

Without DATABASE_URL (tests, local dev) ``engine`` and
``async_session_factory`` are None and campus_core/api/deps.py wires the
in-memory repositories instead.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from campus_core.core.config import SETTINGS

logger = logging.getLogger(__name__)

# Index names match the ones the initial migration creates.
NAMING_CONVENTION = {"ix": "ix_%(column_0_label)s"}

# Seat claims queue on the license row lock; give up rather than pile up.
LOCK_TIMEOUT = "5s"


class Base(DeclarativeBase):
    """Declarative base for every table in campus_core/db/tables.py."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def _create_engine(url: str) -> AsyncEngine:
    return create_async_engine(
        url,
        echo=SETTINGS.is_dev,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={
            "server_settings": {
                "application_name": "campus-core",
                "lock_timeout": LOCK_TIMEOUT,
            }
        },
    )


if SETTINGS.database_url:
    engine: AsyncEngine | None = _create_engine(SETTINGS.database_url)
    async_session_factory: async_sessionmaker[AsyncSession] | None = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
else:
    engine = None
    async_session_factory = None


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One unit of work: commit when the block exits, roll back if it raises."""
    if async_session_factory is None:
        raise RuntimeError("DATABASE_URL is not configured; no database session")
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: the request's unit of work."""
    async with session_scope() as session:
        yield session


@asynccontextmanager
async def lifespan_db():
    if engine is None:
        logger.info("No DATABASE_URL configured, using in-memory repositories")
        yield
        return

    logger.info("Database engine created: %s", engine.url.render_as_string(hide_password=True))
    yield
    await engine.dispose()
    logger.info("Database engine disposed")
