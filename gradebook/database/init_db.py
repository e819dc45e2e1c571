"""
Database initialization and connection management.

This module provides functions for:
1. Creating the async engine and session factory
2. Creating the schema from the ORM metadata
3. Disposing of the engine on shutdown
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from gradebook.common.logger import app_logger
from gradebook.database.base import metadata

logger = app_logger.getChild("database.init_db")

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine() -> AsyncEngine:
    """Get the global async engine instance."""
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _engine


def get_session_factory() -> sessionmaker:
    """Get the session factory bound to the global engine."""
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _session_factory


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    """Create an ``AsyncSession`` factory for ``engine``."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def initialize_database(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
) -> AsyncEngine:
    """
    Initialize the async database engine.

    Args:
        database_url: Database connection URL
        echo: Whether to echo SQL statements
        pool_size: Connection pool size
        max_overflow: Maximum number of connections to allow above pool_size
        pool_timeout: Timeout for getting a connection from the pool

    Returns:
        AsyncEngine instance
    """
    global _engine, _session_factory

    engine_kwargs = {"echo": echo}
    # SQLite engines do not take queue pool arguments
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_pre_ping=True
        )

    try:
        logger.info(f"Initializing database with URL: {database_url[:10]}... and pool size: {pool_size}")
        _engine = create_async_engine(database_url, **engine_kwargs)
        _session_factory = create_session_factory(_engine)

        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        logger.info("Database engine initialized successfully")
        return _engine

    except Exception as e:
        logger.error(f"Failed to initialize async database: {str(e)}")
        raise


async def create_schema(engine: Optional[AsyncEngine] = None) -> None:
    """Create every gradebook table that does not exist yet."""
    # Registers the ORM tables on the shared metadata
    import gradebook.assessments.database_models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Database schema created")


async def close_database() -> None:
    """Close the database engine and all connections."""
    global _engine, _session_factory

    if _engine:
        try:
            await _engine.dispose()
            logger.info("Database engine closed successfully")
        except Exception as e:
            logger.error(f"Error closing database engine: {str(e)}")
            raise
        finally:
            _engine = None
            _session_factory = None
