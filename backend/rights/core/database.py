"""Rights Engine Database Configuration

Async SQLAlchemy engine, session factory and declarative base.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator
import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from rights.core.config import settings

logger = logging.getLogger(__name__)

SQLITE_PREFIX = "sqlite+aiosqlite:///"


def get_database_url() -> str:
    """Get the database URL, creating the parent directory for SQLite files"""
    db_url = settings.DATABASE_URL

    if db_url.startswith(SQLITE_PREFIX) and ":memory:" not in db_url:
        db_path = Path(db_url[len(SQLITE_PREFIX):])
        db_path.parent.mkdir(parents=True, exist_ok=True)

    return db_url


def create_engine() -> AsyncEngine:
    """Create async database engine"""
    db_url = get_database_url()
    connect_args = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    logger.info(f"Using rights database: {db_url}")

    return create_async_engine(
        db_url,
        connect_args=connect_args,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )


engine = create_engine()
async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base class for all rights models"""
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dependency for getting database sessions"""
    async with async_session_maker() as session:
        yield session


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit on success, roll back on any exception and re-raise it.

    The session may already hold an autobegun transaction from earlier reads;
    those reads become part of the same unit of work.
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise


async def init_db(bind: AsyncEngine | None = None):
    """Initialize database tables"""
    import rights.models  # noqa: F401  registers mappers

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Rights database initialized")


async def drop_all(bind: AsyncEngine | None = None):
    """Drop all tables (useful for testing)"""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        logger.info("All rights tables dropped")
