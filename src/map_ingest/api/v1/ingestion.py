"""Ingestion API endpoints.

POST /ingestion/jobs (submit), GET /ingestion/jobs (list for a map),
GET /ingestion/jobs/{job_id} (status), POST /ingestion/jobs/{job_id}/retry.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from map_ingest.core.background import BackgroundTaskRunner
from map_ingest.core.config import Settings, get_settings
from map_ingest.core.dependencies import get_orchestrator, get_task_runner
from map_ingest.schemas.ingestion import (
    IngestionAcceptedResponse,
    IngestionJobListResponse,
    IngestionJobResponse,
    IngestionRequest,
    RetryRequest,
)
from map_ingest.services import ingestion_service
from map_ingest.services.ingestion_service import (
    IngestionJobNotFoundError,
    IngestionJobStateError,
    IngestionOrchestrator,
)

router = APIRouter(prefix="/ingestion", tags=["ingestion"])


def _check_size(raw_text: str, settings: Settings) -> None:
    if len(raw_text.encode("utf-8")) > settings.ingest_max_content_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Content exceeds maximum size of {settings.ingest_max_content_bytes} bytes",
        )


@router.post("/jobs", response_model=IngestionAcceptedResponse, status_code=202)
async def submit_job(
    body: IngestionRequest,
    orchestrator: Annotated[IngestionOrchestrator, Depends(get_orchestrator)],
    runner: Annotated[BackgroundTaskRunner, Depends(get_task_runner)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> IngestionAcceptedResponse:
    """Schedule a bulk upload for geocoding and marker creation."""
    _check_size(body.raw_text, settings)

    job = await ingestion_service.submit_ingestion(
        orchestrator,
        raw_text=body.raw_text,
        file_name=body.file_name,
        user_id=body.user_id,
        map_id=body.map_id,
        column_mapping=body.column_mapping.model_dump(),
        retain_raw_content=settings.ingest_retain_raw_content,
        runner=runner,
    )
    return IngestionAcceptedResponse(job_id=job.id, status=job.status, message="Ingestion job started")


@router.get("/jobs", response_model=IngestionJobListResponse)
async def list_jobs(
    orchestrator: Annotated[IngestionOrchestrator, Depends(get_orchestrator)],
    user_id: Annotated[str, Query(min_length=1)],
    map_id: Annotated[str, Query(min_length=1)],
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> IngestionJobListResponse:
    """List recent ingestion jobs of a map, newest first."""
    jobs = await orchestrator.job_store.list_for_map(user_id, map_id, limit=limit)
    return IngestionJobListResponse(items=[IngestionJobResponse.from_job(job) for job in jobs])


@router.get("/jobs/{job_id}", response_model=IngestionJobResponse)
async def get_job(
    job_id: uuid.UUID,
    orchestrator: Annotated[IngestionOrchestrator, Depends(get_orchestrator)],
) -> IngestionJobResponse:
    """Get status, progress and results of an ingestion job."""
    job = await orchestrator.job_store.get(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ingestion job not found")
    return IngestionJobResponse.from_job(job)


@router.post("/jobs/{job_id}/retry", response_model=IngestionAcceptedResponse, status_code=202)
async def retry_job(
    job_id: uuid.UUID,
    orchestrator: Annotated[IngestionOrchestrator, Depends(get_orchestrator)],
    runner: Annotated[BackgroundTaskRunner, Depends(get_task_runner)],
    settings: Annotated[Settings, Depends(get_settings)],
    body: RetryRequest | None = None,
) -> IngestionAcceptedResponse:
    """Re-run a failed ingestion job."""
    raw_text = body.raw_text if body is not None else None
    if raw_text is not None:
        _check_size(raw_text, settings)

    try:
        job = await ingestion_service.retry_ingestion(
            orchestrator,
            job_id,
            raw_text,
            retain_raw_content=settings.ingest_retain_raw_content,
            runner=runner,
        )
    except IngestionJobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except IngestionJobStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    return IngestionAcceptedResponse(job_id=job.id, status=job.status, message="Ingestion job retry started")
