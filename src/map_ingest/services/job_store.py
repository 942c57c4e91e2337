"""Ingestion job persistence.

Every call opens its own session from the session factory, so the store is
safe to share between the request path and the background pipeline. Updates
are column-scoped UPDATE statements: writing one progress field never
overwrites another.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from map_ingest.models.ingestion_job import IngestionJob, JobStatus

PROGRESS_FIELDS = frozenset(
    {
        "total",
        "processed",
        "geocoding_failures",
        "duplicates",
        "skipped",
        "current_step",
        "step_progress",
        "step_total",
    }
)

RETRY_STEP = "Retrying job..."


class IngestionJobNotFoundError(ValueError):
    """Raised when a job ID does not match any ingestion job."""


@dataclass
class JobResults:
    """Final outcome recorded on a job."""

    markers_added: int = 0
    errors: list[str] = field(default_factory=list)
    processing_time_ms: int = 0


class JobStore:
    """Reads and writes IngestionJob rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        *,
        user_id: str,
        map_id: str,
        file_name: str,
        column_mapping: dict,
        raw_content: str | None = None,
    ) -> IngestionJob:
        """Create a pending job.

        Args:
            user_id: Owner of the target map.
            map_id: Target map.
            file_name: Uploaded file name.
            column_mapping: Header names for name/address/lat/lng.
            raw_content: Upload kept for retry, or None.

        Returns:
            The created IngestionJob.
        """
        job = IngestionJob(
            id=uuid.uuid4(),
            user_id=user_id,
            map_id=map_id,
            file_name=file_name,
            column_mapping=column_mapping,
            status=JobStatus.PENDING,
            current_step="Queued",
            raw_content=raw_content,
        )
        async with self._session_factory() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)
        logger.info(f"Created ingestion job {job.id} for map {map_id}")
        return job

    async def get(self, job_id: uuid.UUID) -> IngestionJob | None:
        """Get a job by ID, or None if not found."""
        async with self._session_factory() as session:
            result = await session.execute(select(IngestionJob).where(IngestionJob.id == job_id))
            return result.scalar_one_or_none()

    async def list_for_map(self, user_id: str, map_id: str, limit: int = 20) -> list[IngestionJob]:
        """List the most recent jobs for a map, newest first."""
        query = (
            select(IngestionJob)
            .where(IngestionJob.user_id == user_id, IngestionJob.map_id == map_id)
            .order_by(IngestionJob.created_at.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def mark_processing(self, job_id: uuid.UUID) -> None:
        """Move a job to processing and stamp its start time."""
        await self._update(
            job_id,
            status=JobStatus.PROCESSING,
            current_step="Starting...",
            started_at=datetime.now(UTC),
        )

    async def update_progress(self, job_id: uuid.UUID, **fields: int | str) -> None:
        """Write only the given progress fields.

        Raises:
            ValueError: If a field is not a progress field.
        """
        unknown = set(fields) - PROGRESS_FIELDS
        if unknown:
            msg = f"Not progress fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        if fields:
            await self._update(job_id, **fields)

    async def finalize(
        self,
        job_id: uuid.UUID,
        status: JobStatus,
        results: JobResults,
        **progress: int | str,
    ) -> None:
        """Record the final status and results of a run.

        Retained upload content is dropped once a job completes; a failed job
        keeps it so the job can be retried.

        Args:
            job_id: The job.
            status: completed or failed.
            results: Markers written, errors and duration.
            **progress: Progress fields to write in the same statement.
        """
        if status not in (JobStatus.COMPLETED, JobStatus.FAILED):
            msg = f"Cannot finalize a job as {status}"
            raise ValueError(msg)
        unknown = set(progress) - PROGRESS_FIELDS
        if unknown:
            msg = f"Not progress fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        values: dict = {
            **progress,
            "status": status,
            "markers_added": results.markers_added,
            "errors": list(results.errors),
            "processing_time_ms": results.processing_time_ms,
            "completed_at": datetime.now(UTC),
        }
        if status == JobStatus.COMPLETED:
            values["raw_content"] = None
        await self._update(job_id, **values)

    async def reset_for_retry(self, job_id: uuid.UUID, raw_content: str | None = None) -> bool:
        """Reset a failed job to pending with zeroed progress and cleared results.

        The reset only applies while the job is still failed, so two
        concurrent retries cannot both succeed.

        Args:
            job_id: The job.
            raw_content: New upload content to retain, or None to keep the current one.

        Returns:
            True if the job was reset.
        """
        values: dict = {
            "status": JobStatus.PENDING,
            "total": 0,
            "processed": 0,
            "geocoding_failures": 0,
            "duplicates": 0,
            "skipped": 0,
            "current_step": RETRY_STEP,
            "step_progress": 0,
            "step_total": 0,
            "markers_added": None,
            "errors": None,
            "processing_time_ms": None,
            "started_at": None,
            "completed_at": None,
            "attempt": IngestionJob.attempt + 1,
        }
        if raw_content is not None:
            values["raw_content"] = raw_content

        stmt = (
            update(IngestionJob)
            .where(IngestionJob.id == job_id, IngestionJob.status == JobStatus.FAILED)
            .values(**values)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount > 0

    async def _update(self, job_id: uuid.UUID, **values: object) -> None:
        async with self._session_factory() as session:
            result = await session.execute(update(IngestionJob).where(IngestionJob.id == job_id).values(**values))
            await session.commit()
        if result.rowcount == 0:
            msg = f"Ingestion job {job_id} not found"
            raise IngestionJobNotFoundError(msg)
