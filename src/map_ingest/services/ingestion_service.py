"""Ingestion service: turns an uploaded file into map markers as a tracked background job.

submit_ingestion creates the job and hands the run to the background runner;
retry_ingestion re-runs a failed job. IngestionOrchestrator performs a run:
parse, resolve coordinates row by row, write markers, report progress after
every row, and record the final status. Every failure inside a run ends up on
the job record rather than escaping the background task.
"""

import asyncio
import time
import uuid
from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from map_ingest.core.background import BackgroundTaskRunner, task_runner
from map_ingest.core.config import Settings
from map_ingest.core.rate_limit import NoOpRateGate, RateGate, SleepFunc
from map_ingest.lib.extractor import (
    AddressCandidate,
    ColumnMapping,
    DuplicateTracker,
    ExtractionError,
    extract_candidates,
)
from map_ingest.lib.geocoder import GeocoderConfig
from map_ingest.models.ingestion_job import IngestionJob, JobStatus
from map_ingest.services.geocoding_service import GeocodingService
from map_ingest.services.job_store import IngestionJobNotFoundError, JobResults, JobStore
from map_ingest.services.marker_sink import MarkerData, MarkerSink

GEOCODING_STEP = "Geocoding addresses..."
COMPLETED_STEP = "Completed"
FAILED_STEP = "Failed"

__all__ = [
    "IngestionJobNotFoundError",
    "IngestionJobStateError",
    "IngestionOrchestrator",
    "RetryContentUnavailableError",
    "build_orchestrator",
    "retry_ingestion",
    "submit_ingestion",
]


class IngestionJobStateError(ValueError):
    """Raised when a job is not in a state that allows the requested action."""


class RetryContentUnavailableError(IngestionJobStateError):
    """Raised when a failed job cannot be retried because its upload is no longer available."""


class IngestionOrchestrator:
    """Runs ingestion jobs.

    Args:
        job_store: Job persistence.
        marker_sink: Marker persistence.
        geocoder: Address resolution service.
        max_attempts: Geocoding attempts per row.
        retry_delay: Seconds between failed attempts for the same row.
        row_gate: Pacing for rows that call a geocoding provider.
        skip_duplicates: Count repeated rows as duplicates instead of adding them.
        sleep: Sleep used for the retry delay.
        clock: Monotonic clock used for the processing time.
    """

    def __init__(
        self,
        job_store: JobStore,
        marker_sink: MarkerSink,
        geocoder: GeocodingService,
        *,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
        row_gate: RateGate | None = None,
        skip_duplicates: bool = True,
        sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            msg = "max_attempts must be >= 1"
            raise ValueError(msg)
        self.job_store = job_store
        self.marker_sink = marker_sink
        self.geocoder = geocoder
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.row_gate = row_gate or NoOpRateGate()
        self.skip_duplicates = skip_duplicates
        self._sleep = sleep
        self._clock = clock

    async def run(
        self,
        raw_text: str,
        column_mapping: ColumnMapping | Mapping[str, Any],
        job_id: uuid.UUID,
        user_id: str,
        map_id: str,
    ) -> None:
        """Run one ingestion job to completion or failure.

        Never raises: every failure is recorded on the job.

        Args:
            raw_text: Uploaded file content.
            column_mapping: Header names for name/address/lat/lng.
            job_id: The job to report on.
            user_id: Owner of the target map.
            map_id: Target map.
        """
        started = self._clock()
        markers_added = 0

        try:
            await self.job_store.mark_processing(job_id)

            try:
                candidates, skipped = extract_candidates(raw_text, column_mapping)
            except ExtractionError as e:
                logger.warning(f"Ingestion job {job_id}: parsing failed: {e}")
                logger.bind(
                    json_output=True, event="ingestion_job_finished", job_id=str(job_id), status=str(JobStatus.FAILED)
                ).info(f"Ingestion job {job_id} failed while parsing")
                await self.job_store.finalize(
                    job_id,
                    JobStatus.FAILED,
                    JobResults(errors=[f"Parsing failed: {e}"], processing_time_ms=self._elapsed_ms(started)),
                    current_step=FAILED_STEP,
                )
                return

            total = len(candidates)
            await self.job_store.update_progress(
                job_id,
                total=total,
                skipped=skipped,
                step_progress=0,
                step_total=total,
                current_step=GEOCODING_STEP,
            )

            failures = 0
            duplicates = 0
            tracker = await self._duplicate_tracker(user_id, map_id) if self.skip_duplicates else None

            for i, candidate in enumerate(candidates, start=1):
                if tracker is not None and tracker.is_duplicate(candidate):
                    duplicates += 1
                    logger.debug(f"Ingestion job {job_id}: row {candidate.row_index + 1} is a duplicate")
                else:
                    coordinates = await self._locate(candidate)
                    if coordinates is None:
                        failures += 1
                    elif await self._write_marker(job_id, user_id, map_id, candidate, coordinates):
                        markers_added += 1

                await self.job_store.update_progress(
                    job_id,
                    processed=i,
                    step_progress=i,
                    geocoding_failures=failures,
                    duplicates=duplicates,
                    current_step=f"{GEOCODING_STEP} ({i}/{total})",
                )

            elapsed_ms = self._elapsed_ms(started)
            await self.job_store.finalize(
                job_id,
                JobStatus.COMPLETED,
                JobResults(markers_added=markers_added, errors=[], processing_time_ms=elapsed_ms),
                current_step=COMPLETED_STEP,
            )
            logger.bind(
                json_output=True,
                event="ingestion_job_finished",
                job_id=str(job_id),
                status=str(JobStatus.COMPLETED),
                total=total,
                markers_added=markers_added,
                geocoding_failures=failures,
                duplicates=duplicates,
                skipped=skipped,
                processing_time_ms=elapsed_ms,
            ).info(f"Ingestion job {job_id} completed: {markers_added} markers added")

        except Exception as e:
            logger.opt(exception=e).error(f"Ingestion job {job_id} failed")
            try:
                await self.job_store.finalize(
                    job_id,
                    JobStatus.FAILED,
                    JobResults(
                        markers_added=markers_added,
                        errors=[str(e) or type(e).__name__],
                        processing_time_ms=self._elapsed_ms(started),
                    ),
                    current_step=FAILED_STEP,
                )
            except Exception:
                logger.exception(f"Could not record failure of ingestion job {job_id}")

    async def _duplicate_tracker(self, user_id: str, map_id: str) -> DuplicateTracker:
        """Tracker that already knows the markers on the map, so a rerun does not add them twice."""
        tracker = DuplicateTracker()
        existing = await self.marker_sink.list_markers(user_id, map_id)
        for marker in existing:
            tracker.remember(
                AddressCandidate(
                    name=marker.name, address=marker.address, row_index=-1, lat=marker.lat, lng=marker.lng
                )
            )
        if existing:
            logger.debug(f"Checking duplicates against {len(existing)} existing markers on map {map_id}")
        return tracker

    async def _locate(self, candidate: AddressCandidate) -> tuple[float, float] | None:
        """Coordinates for a candidate, geocoding with retry when none were supplied."""
        if candidate.has_coordinates:
            return candidate.lat, candidate.lng  # type: ignore[return-value]

        await self.row_gate.acquire()

        last_error: str | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                outcome = await self.geocoder.resolve(candidate.address)
            except Exception as e:
                last_error = str(e) or type(e).__name__
                logger.warning(f"Geocoding attempt {attempt}/{self.max_attempts} raised: {last_error}")
            else:
                if outcome.success:
                    return outcome.lat, outcome.lng
                last_error = outcome.error

            if attempt < self.max_attempts:
                logger.debug(f"Geocoding retry {attempt}/{self.max_attempts} in {self.retry_delay}s")
                await self._sleep(self.retry_delay)

        logger.warning(
            f"Row {candidate.row_index + 1}: could not geocode after {self.max_attempts} attempts ({last_error})"
        )
        return None

    async def _write_marker(
        self,
        job_id: uuid.UUID,
        user_id: str,
        map_id: str,
        candidate: AddressCandidate,
        coordinates: tuple[float, float],
    ) -> bool:
        lat, lng = coordinates
        marker = MarkerData(
            name=candidate.name,
            address=candidate.address,
            lat=lat,
            lng=lng,
            job_id=job_id,
            row_index=candidate.row_index,
        )
        try:
            await self.marker_sink.add_marker(user_id, map_id, marker)
        except Exception as e:
            logger.error(f"Ingestion job {job_id}: could not save marker for row {candidate.row_index + 1}: {e}")
            return False
        return True

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)


def build_orchestrator(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    sleep: SleepFunc | None = None,
) -> IngestionOrchestrator:
    """Wire an orchestrator from application settings.

    Args:
        settings: Application settings.
        session_factory: Session factory for the job and marker stores.
        sleep: Optional sleep override for every pacing component.

    Returns:
        A ready-to-run IngestionOrchestrator.
    """
    sleep_func = sleep or asyncio.sleep
    geocoder = GeocodingService.from_config(GeocoderConfig.from_settings(settings), sleep=sleep_func)
    return IngestionOrchestrator(
        JobStore(session_factory),
        MarkerSink(session_factory),
        geocoder,
        max_attempts=settings.ingest_max_attempts,
        retry_delay=settings.ingest_retry_delay,
        row_gate=RateGate(settings.ingest_row_interval, sleep=sleep_func),
        skip_duplicates=settings.ingest_skip_duplicates,
        sleep=sleep_func,
    )


async def submit_ingestion(
    orchestrator: IngestionOrchestrator,
    *,
    raw_text: str,
    file_name: str,
    user_id: str,
    map_id: str,
    column_mapping: ColumnMapping | Mapping[str, Any],
    retain_raw_content: bool = True,
    runner: BackgroundTaskRunner = task_runner,
) -> IngestionJob:
    """Create an ingestion job and start it in the background.

    Returns as soon as the job is created; progress is read from the job.

    Args:
        orchestrator: Orchestrator that runs the job.
        raw_text: Uploaded file content.
        file_name: Uploaded file name.
        user_id: Owner of the target map.
        map_id: Target map.
        column_mapping: Header names for name/address/lat/lng.
        retain_raw_content: Keep the upload on the job so a failed run can be retried.
        runner: Background task runner.

    Returns:
        The created (pending) IngestionJob.
    """
    mapping = column_mapping if isinstance(column_mapping, ColumnMapping) else ColumnMapping.from_dict(column_mapping)

    job = await orchestrator.job_store.create(
        user_id=user_id,
        map_id=map_id,
        file_name=file_name,
        column_mapping=mapping.to_dict(),
        raw_content=raw_text if retain_raw_content else None,
    )
    runner.submit_task(orchestrator.run(raw_text, mapping, job.id, user_id, map_id), task_id=str(job.id))
    return job


async def retry_ingestion(
    orchestrator: IngestionOrchestrator,
    job_id: uuid.UUID,
    raw_text: str | None = None,
    *,
    retain_raw_content: bool = True,
    runner: BackgroundTaskRunner = task_runner,
) -> IngestionJob:
    """Reset a failed job and run it again in the background.

    Args:
        orchestrator: Orchestrator that runs the job.
        job_id: The failed job.
        raw_text: Upload content to use; defaults to the content retained on the job.
        retain_raw_content: Keep newly supplied content on the job.
        runner: Background task runner.

    Returns:
        The reset (pending) IngestionJob.

    Raises:
        IngestionJobNotFoundError: If the job does not exist.
        IngestionJobStateError: If the job is not failed.
        RetryContentUnavailableError: If no content was supplied or retained.
    """
    store = orchestrator.job_store
    job = await store.get(job_id)
    if job is None:
        msg = f"Ingestion job {job_id} not found"
        raise IngestionJobNotFoundError(msg)
    if job.status != JobStatus.FAILED:
        msg = f"Ingestion job {job_id} is {job.status}; only failed jobs can be retried"
        raise IngestionJobStateError(msg)

    content = raw_text if raw_text is not None else job.raw_content
    if not content:
        msg = f"Ingestion job {job_id} has no retained upload; resubmit the file content to retry"
        raise RetryContentUnavailableError(msg)

    reset = await store.reset_for_retry(
        job_id, raw_content=raw_text if raw_text is not None and retain_raw_content else None
    )
    if not reset:
        msg = f"Ingestion job {job_id} changed state before it could be retried"
        raise IngestionJobStateError(msg)

    refreshed = await store.get(job_id) or job

    logger.info(f"Retrying ingestion job {job_id} (attempt {refreshed.attempt})")
    runner.submit_task(
        orchestrator.run(content, job.column_mapping, job.id, job.user_id, job.map_id),
        task_id=str(job.id),
    )
    return refreshed
