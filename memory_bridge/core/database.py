"""
Database engine configuration.

Builds the SQLAlchemy asyncio engine and session factory for PostgreSQL
(asyncpg, pooled) or SQLite (aiosqlite) from explicit settings.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .config import Settings

logger = logging.getLogger(__name__)

# SQLAlchemy base class for models
Base = declarative_base()


def is_sqlite_url(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def get_database_config(settings: Settings) -> Dict[str, Any]:
    """
    Get engine keyword arguments for the configured backend.

    Args:
        settings: Application settings

    Returns:
        Dict: Keyword arguments for create_async_engine
    """
    echo = settings.log_level.upper() == "DEBUG"

    if is_sqlite_url(settings.database_url):
        config: Dict[str, Any] = {
            'echo': echo,
            'connect_args': {'check_same_thread': False},
        }
        # In-memory databases vanish when their only connection closes
        if ":memory:" in settings.database_url or settings.database_url.endswith("://"):
            config['poolclass'] = StaticPool
        return config

    return {
        'pool_size': settings.db_pool_size,
        'max_overflow': settings.db_max_overflow,
        'pool_timeout': settings.db_pool_timeout,
        'pool_recycle': settings.db_pool_recycle,
        'pool_pre_ping': True,
        'echo': echo,
        'connect_args': {
            'server_settings': {
                'jit': 'off',  # Disable JIT for predictable performance
                'application_name': 'memory_bridge',
                'timezone': 'UTC'
            }
        }
    }


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    Args:
        settings: Application settings

    Returns:
        AsyncEngine: Configured engine (no connection is opened yet)
    """
    engine = create_async_engine(settings.database_url, **get_database_config(settings))

    if is_sqlite_url(settings.database_url):
        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            """Enable WAL and a busy timeout so concurrent writers wait instead of failing."""
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    logger.info(f"Database engine created for {engine.url.get_backend_name()}")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False  # Prevent expired object issues
    )


@asynccontextmanager
async def session_scope(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for a transactional session.

    Commits on success and rolls back on any exception.

    Example:
        >>> async with session_scope(factory) as session:
        ...     await session.execute(stmt)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Async transaction failed: {e}")
            await session.rollback()
            raise


async def init_database(engine: AsyncEngine) -> None:
    """
    Create all tables and constraints.

    Args:
        engine: Async engine bound to the target database
    """
    # Import models to ensure they're registered
    from memory_bridge.models.memory import Memory  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created successfully")


async def check_database_connection(engine: AsyncEngine) -> bool:
    """
    Check async database connection.

    Returns:
        bool: True if connection is healthy, False otherwise
    """
    try:
        async with engine.connect() as connection:
            result = await connection.execute(text("SELECT 1"))
            result.fetchone()
        return True

    except Exception as e:
        logger.error(f"Async database connection check failed: {e}")
        return False
