#!/usr/bin/env python3
"""
Database initialization script.

Creates every gradebook table on the configured database. Production
deployments run the alembic migrations instead.
"""

import sys
import asyncio

from gradebook.config import settings
from gradebook.common.logger import app_logger
from gradebook.database.init_db import close_database, create_schema, initialize_database

logger = app_logger.getChild("scripts.init_db")


async def async_main(database_url: str) -> None:
    """Initialize the database."""
    engine = await initialize_database(database_url=database_url, echo=settings.SQL_ECHO)
    try:
        await create_schema(engine)
        logger.info("Database initialized successfully")
    finally:
        await close_database()


def main() -> None:
    database_url = sys.argv[1] if len(sys.argv) > 1 else settings.DATABASE_URL
    try:
        asyncio.run(async_main(database_url))
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
