"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from map_ingest.core.background import task_runner
from map_ingest.core.config import get_settings
from map_ingest.core.database import dispose_engine, get_session_factory, init_engine
from map_ingest.core.logging import setup_logging
from map_ingest.services.ingestion_service import build_orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle: init engine and pipeline on startup, dispose on shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    init_engine(settings.database_url, echo=False)
    app.state.orchestrator = build_orchestrator(settings, get_session_factory())

    yield

    # Let in-flight jobs record their outcome before the engine goes away
    await task_runner.wait_all()
    app.state.orchestrator = None
    await dispose_engine()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Map Ingest",
        description="Bulk address ingestion and geocoding into map markers",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Register exception handlers
    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc)},
        )

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok"}

    # Register middleware and routers
    from map_ingest.api.router import create_router, setup_middleware

    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    return app
