"""
Main application entry point for the exam engine.

This module builds the FastAPI application, wires the assessment engine to
the configured storage backend and registers the API routers.

Usage:
    - Direct: python -m exam_engine.main
    - ASGI server: uvicorn exam_engine.main:app
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from exam_engine.api import main_router, register_exception_handlers, register_module
from exam_engine.assessments.controller import router as assessments_router
from exam_engine.assessments.service import AssessmentEngine, create_assessment_engine, seed_questions
from exam_engine.assessments.tasks import start_sweep_task, stop_sweep_task
from exam_engine.common.logger import app_logger
from exam_engine.config import settings
from exam_engine.database.init_db import close_database, initialize_database

# Setup module logger
logger = app_logger.getChild("main")

register_module("assessments", assessments_router)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize storage and background tasks on startup, release them on shutdown."""
    uses_database = False
    try:
        if getattr(app.state, "assessment_engine", None) is None:
            if settings.STORAGE_BACKEND == "sql":
                await initialize_database(
                    database_url=settings.DATABASE_URL,
                    echo=settings.SQL_ECHO,
                    pool_size=settings.DB_POOL_SIZE,
                    max_overflow=settings.DB_MAX_OVERFLOW,
                    pool_timeout=settings.DB_POOL_TIMEOUT
                )
                uses_database = True
            app.state.assessment_engine = create_assessment_engine(settings)
            if settings.QUESTION_SEED_FILE:
                await seed_questions(app.state.assessment_engine, settings.QUESTION_SEED_FILE)

        sweep_task = start_sweep_task(
            app.state.assessment_engine,
            settings.SWEEP_INTERVAL_SECONDS,
            settings.SWEEP_EXPIRE_ATTEMPTS
        )
        logger.info("Application startup complete")
    except Exception as e:
        logger.error(f"Failed to initialize application: {str(e)}")
        raise

    yield

    try:
        await stop_sweep_task(sweep_task)
        if uses_database:
            await close_database()
        logger.info("Application shutdown complete")
    except Exception as e:
        logger.error(f"Error during application shutdown: {str(e)}")
        raise


def create_app(engine: Optional[AssessmentEngine] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        engine: Pre-built engine to serve; when omitted, the lifespan builds
            one from settings

    Returns:
        The configured application
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="API for timed, access-gated assessments",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.assessment_engine = engine

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(main_router, prefix=settings.API_V1_STR)

    @app.get("/health")
    async def health():
        """Liveness probe."""
        return {"status": "ok", "storage": settings.STORAGE_BACKEND}

    logger.info(f"Application initialized with {len(app.routes)} routes")
    return app


app = create_app()

# Entry point for running the application directly
if __name__ == "__main__":
    import uvicorn

    # Get configuration from environment or use defaults
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    reload_enabled = os.environ.get("RELOAD", "false").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")

    # Run the application
    uvicorn.run(
        "exam_engine.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        log_level="info"
    )
