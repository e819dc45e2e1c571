"""
Main application entry point for the gradebook.

This module builds the FastAPI application: it registers the gradebook
routes, installs the error handlers and, on startup, connects the SQL
backend when that is the configured storage.

Usage:
    - Direct: python -m gradebook.main
    - ASGI server: uvicorn gradebook.main:app
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gradebook import __version__
from gradebook.api import install_exception_handlers, main_router, register_module
from gradebook.assessments.router import router as gradebook_router
from gradebook.assessments.service import GradebookService, build_service
from gradebook.common.logger import app_logger
from gradebook.config import settings
from gradebook.database.init_db import close_database, create_schema, initialize_database

# Setup module logger
logger = app_logger.getChild("main")

register_module("gradebook", gradebook_router)


def create_app(service: Optional[GradebookService] = None) -> FastAPI:
    """
    Create the application.

    Args:
        service: A ready service to serve; when omitted one is built for
            ``settings.STORAGE_BACKEND`` during startup
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        uses_sql = service is None and settings.STORAGE_BACKEND == "sql"
        try:
            if uses_sql:
                await initialize_database(
                    database_url=settings.DATABASE_URL,
                    echo=settings.SQL_ECHO,
                    pool_size=settings.DB_POOL_SIZE,
                    max_overflow=settings.DB_MAX_OVERFLOW,
                    pool_timeout=settings.DB_POOL_TIMEOUT
                )
                await create_schema()
            app.state.gradebook_service = service or build_service(
                settings.STORAGE_BACKEND, settings.ATTEMPT_START_RETRIES
            )
            if not settings.JWT_SECRET:
                logger.warning(
                    "JWT_SECRET is not set: bearer tokens are taken as user ids and roles are read "
                    "unverified from X-User-Roles; do not expose this instance"
                )
            logger.info("Application startup complete")
        except Exception as e:
            logger.error(f"Failed to initialize application: {str(e)}")
            raise

        yield

        if uses_sql:
            await close_database()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Assessment attempts, grading and analytics",
        version=__version__,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if service is not None:
        app.state.gradebook_service = service

    install_exception_handlers(app)
    app.include_router(main_router, prefix=settings.API_PREFIX)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": f"Welcome to the {settings.PROJECT_NAME} API", "version": __version__}

    logger.info(f"Application initialized with {len(app.routes)} routes")
    return app


app = create_app()


# Entry point for running the application directly
if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    reload_enabled = os.environ.get("RELOAD", "false").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")

    uvicorn.run(
        "gradebook.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        log_level=settings.LOG_LEVEL.lower()
    )
