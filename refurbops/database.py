from contextlib import asynccontextmanager
from typing import AsyncGenerator
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from refurbops.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _normalize_database_url(url: str) -> str:
    """Switch plain/asyncpg PostgreSQL URLs to the async psycopg driver."""
    if url.startswith("postgresql+asyncpg://"):
        return url.replace("postgresql+asyncpg://", "postgresql+psycopg://")
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://")
    return url


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create the async engine with connection bounds taken from settings."""
    if settings.is_sqlite:
        engine = create_async_engine(
            settings.DATABASE_URL,
            echo=settings.DEBUG,
            # sqlite3 busy timeout: how long a writer waits on a locked database
            connect_args={"check_same_thread": False, "timeout": settings.DB_CONNECT_TIMEOUT},
        )
        _use_immediate_transactions(engine)
        return engine

    return create_async_engine(
        _normalize_database_url(settings.DATABASE_URL),
        echo=settings.DEBUG,
        pool_pre_ping=True,  # Check connection health before use
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        connect_args={
            "connect_timeout": settings.DB_CONNECT_TIMEOUT,
        },
    )


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    The driver otherwise defers BEGIN until the first write, so two units of
    work can read the same row and the loser fails with "database is locked"
    instead of seeing the winner's committed state.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Context manager for getting a database session (for background jobs)."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    # Import all models to register them with Base.metadata
    from refurbops import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready: {len(Base.metadata.tables)} tables registered")
