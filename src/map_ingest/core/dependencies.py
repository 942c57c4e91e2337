"""FastAPI dependency injection for the ingestion pipeline.

The orchestrator is built once per application in the lifespan handler so
that its rate gates pace every job of the process together.
"""

from fastapi import HTTPException, Request, status

from map_ingest.core.background import BackgroundTaskRunner, task_runner
from map_ingest.services.ingestion_service import IngestionOrchestrator


def get_orchestrator(request: Request) -> IngestionOrchestrator:
    """Return the application's orchestrator.

    Raises:
        HTTPException: 503 if the application has not finished starting.
    """
    orchestrator: IngestionOrchestrator | None = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ingestion pipeline not ready")
    return orchestrator


def get_task_runner() -> BackgroundTaskRunner:
    """Return the process-wide background task runner."""
    return task_runner
