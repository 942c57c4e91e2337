"""End-to-end ingestion runs: submit, background run, final job state.

Uses the in-memory database, the real geocoding service and fake providers.
"""

import uuid

import pytest
from sqlalchemy import select

from map_ingest.core.background import InProcessTaskRunner
from map_ingest.lib.geocoder.base import GeocodingProviderError
from map_ingest.models.ingestion_job import JobStatus
from map_ingest.models.marker import Marker
from map_ingest.schemas.ingestion import IngestionJobResponse
from map_ingest.services.geocoding_service import GeocodingService
from map_ingest.services.ingestion_service import (
    IngestionJobNotFoundError,
    IngestionJobStateError,
    IngestionOrchestrator,
    RetryContentUnavailableError,
    retry_ingestion,
    submit_ingestion,
)
from map_ingest.services.job_store import JobStore
from map_ingest.services.marker_sink import MarkerData

ADDRESS_MAPPING = {"name": "Name", "address": "Addr"}
TWO_CAFES = 'Name,Addr\nCafe,"1 Main St, Granby"\nDeli,"2 Main St, Granby"\n'
COORDINATE_MAPPING = {"name": "Name", "address": "Addr", "lat": "Lat", "lng": "Lng"}


class TestIngestionPipeline:
    """Scenarios run through submit_ingestion and the background runner."""

    @pytest.fixture(autouse=True)
    def _pipeline(self, job_store, marker_sink, make_geocoder) -> None:
        self.sleeps: list[float] = []

        async def record_sleep(seconds: float) -> None:
            self.sleeps.append(seconds)

        self.primary = make_geocoder(
            "nominatim",
            {
                "1 Rue Principale, Granby, QC": (45.40, -72.73),
                "99 Nowhere Rd, Atlantis": GeocodingProviderError("nominatim", "HTTP 500", 500),
            },
        )
        self.fallback = make_geocoder("mapbox", {"12 Rue Principale, Granby, QC": (45.41, -72.74)})
        self.geocoder = GeocodingService(self.primary, self.fallback, country_code="ca")
        self.orchestrator = IngestionOrchestrator(
            job_store, marker_sink, self.geocoder, max_attempts=3, retry_delay=2.0, sleep=record_sleep
        )
        self.runner = InProcessTaskRunner()

    async def _submit(self, raw_text: str, column_mapping: dict, **kwargs):
        job = await submit_ingestion(
            self.orchestrator,
            raw_text=raw_text,
            file_name="upload.csv",
            user_id="user-1",
            map_id="map-1",
            column_mapping=column_mapping,
            runner=self.runner,
            **kwargs,
        )
        await self.runner.wait_all()
        return await self.orchestrator.job_store.get(job.id)

    async def test_primary_fallback_and_failure(self) -> None:
        raw_text = (
            "Name,Addr\n"
            'Cafe,"1 Rue Principale, Granby, QC"\n'
            'Bakery,"12 Rue Principale, Granby, QC J2G 2T9"\n'
            'Lost,"99 Nowhere Rd, Atlantis"\n'
        )

        job = await self._submit(raw_text, ADDRESS_MAPPING)

        assert job.status == JobStatus.COMPLETED
        assert job.markers_added == 2
        assert job.geocoding_failures == 1
        assert job.total == 3
        assert job.processed == 3
        assert job.errors == []
        assert job.raw_content is None

        fallback_queries = [q for q, _ in self.fallback.queries]
        assert fallback_queries[:2] == ["12 Rue Principale, Granby, QC J2G 2T9", "12 Rue Principale, Granby, QC"]
        # Row 3 is attempted three times with the retry delay between attempts
        assert [q for q, _ in self.primary.queries].count("99 Nowhere Rd, Atlantis") == 3
        assert self.sleeps == [2.0, 2.0]
        assert await self.orchestrator.marker_sink.count_markers("user-1", "map-1") == 2

        response = IngestionJobResponse.from_job(job)
        assert response.status == "completed"
        assert response.results.markers_added == 2
        assert response.progress.geocoding_failures == 1

    async def test_out_of_range_latitude_skipped(self) -> None:
        raw_text = "Name,Addr,Lat,Lng\nPolar,,95,10\nCafe,,45.5,-73.6\n"

        job = await self._submit(raw_text, COORDINATE_MAPPING)

        assert job.status == JobStatus.COMPLETED
        assert job.skipped == 1
        assert job.total == 1
        assert job.markers_added == 1
        assert self.primary.queries == []
        assert self.fallback.queries == []

    async def test_unparseable_input_fails_immediately(self) -> None:
        job = await self._submit("%PDF-1.4 not a spreadsheet", ADDRESS_MAPPING)

        assert job.status == JobStatus.FAILED
        assert job.total == 0
        assert len(job.errors) == 1
        assert job.markers_added == 0
        assert job.raw_content == "%PDF-1.4 not a spreadsheet"

    async def test_supplied_coordinates_written_exactly(self, session_factory) -> None:
        raw_text = 'Name,Addr,Lat,Lng\nOffice,"500 Rue Sherbrooke, Montreal, QC",45.5,-73.6\n'

        job = await self._submit(raw_text, COORDINATE_MAPPING)

        assert job.markers_added == 1
        assert self.primary.queries == []
        assert self.fallback.queries == []
        async with session_factory() as session:
            marker = (await session.execute(select(Marker))).scalar_one()
        assert (marker.latitude, marker.longitude) == (45.5, -73.6)
        assert marker.job_id == job.id
        assert marker.address == "500 Rue Sherbrooke, Montreal, QC"

    async def test_raw_content_not_retained_when_disabled(self) -> None:
        job = await self._submit("garbage", ADDRESS_MAPPING, retain_raw_content=False)

        assert job.status == JobStatus.FAILED
        assert job.raw_content is None

    async def test_missing_mapped_columns_skip_every_row(self) -> None:
        job = await self._submit("Title,Addr\nCafe,1 Main St\nDeli,2 Main St\n", {"name": "Name", "address": "Addr"})

        assert job.status == JobStatus.COMPLETED
        assert job.skipped == 2
        assert job.total == 0
        assert job.markers_added == 0
        assert job.errors == []
        assert self.primary.queries == []


class TestRetry:
    """retry_ingestion against jobs left in each state."""

    @pytest.fixture(autouse=True)
    def _pipeline(self, job_store, marker_sink, make_geocoder) -> None:
        async def no_sleep(seconds: float) -> None:
            return None

        primary = make_geocoder("nominatim", {"1 Main St, Granby": (45.4, -72.7)})
        self.orchestrator = IngestionOrchestrator(
            job_store, marker_sink, GeocodingService(primary), retry_delay=0.0, sleep=no_sleep
        )
        self.runner = InProcessTaskRunner()

    async def _failed_job(self, raw_content: str | None = "not a table"):
        job = await self.orchestrator.job_store.create(
            user_id="user-1",
            map_id="map-1",
            file_name="upload.csv",
            column_mapping=ADDRESS_MAPPING,
            raw_content=raw_content,
        )
        await self.orchestrator.run("not a table", ADDRESS_MAPPING, job.id, "user-1", "map-1")
        return job

    async def test_retry_with_new_content_completes(self) -> None:
        job = await self._failed_job()

        reset = await retry_ingestion(
            self.orchestrator, job.id, 'Name,Addr\nCafe,"1 Main St, Granby"\n', runner=self.runner
        )

        assert reset.status == JobStatus.PENDING
        assert reset.attempt == 2
        assert (reset.total, reset.processed, reset.geocoding_failures) == (0, 0, 0)
        assert reset.markers_added is None

        await self.runner.wait_all()
        done = await self.orchestrator.job_store.get(job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.markers_added == 1
        assert done.attempt == 2

    async def test_retry_uses_retained_content(self) -> None:
        job = await self._failed_job(raw_content='Name,Addr\nCafe,"1 Main St, Granby"\n')

        await retry_ingestion(self.orchestrator, job.id, runner=self.runner)
        await self.runner.wait_all()

        done = await self.orchestrator.job_store.get(job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.markers_added == 1

    async def test_retry_without_content_rejected(self) -> None:
        job = await self._failed_job(raw_content=None)

        with pytest.raises(RetryContentUnavailableError):
            await retry_ingestion(self.orchestrator, job.id, runner=self.runner)

        unchanged = await self.orchestrator.job_store.get(job.id)
        assert unchanged.status == JobStatus.FAILED
        assert unchanged.attempt == 1

    async def test_retry_completed_job_rejected(self) -> None:
        job = await self.orchestrator.job_store.create(
            user_id="user-1", map_id="map-1", file_name="upload.csv", column_mapping=ADDRESS_MAPPING
        )
        await self.orchestrator.run('Name,Addr\nCafe,"1 Main St, Granby"\n', ADDRESS_MAPPING, job.id, "user-1", "map-1")

        with pytest.raises(IngestionJobStateError, match="only failed jobs"):
            await retry_ingestion(self.orchestrator, job.id, "Name,Addr\n", runner=self.runner)

    async def test_retry_unknown_job(self) -> None:
        with pytest.raises(IngestionJobNotFoundError):
            await retry_ingestion(self.orchestrator, uuid.uuid4(), "Name,Addr\n", runner=self.runner)


class _StoreFailingOnceAt(JobStore):
    """JobStore whose progress write fails once, when the given row count is reported."""

    def __init__(self, session_factory, processed: int) -> None:
        super().__init__(session_factory)
        self.fail_at = processed

    async def update_progress(self, job_id: uuid.UUID, **fields: int | str) -> None:
        if fields.get("processed") == self.fail_at:
            self.fail_at = None
            msg = "database went away"
            raise RuntimeError(msg)
        await super().update_progress(job_id, **fields)


class TestRetryAfterPartialRun:
    """A run that dies midway leaves markers behind; the retry must not write them again."""

    async def test_retry_skips_markers_from_failed_attempt(self, session_factory, marker_sink, make_geocoder) -> None:
        async def no_sleep(seconds: float) -> None:
            return None

        store = _StoreFailingOnceAt(session_factory, processed=1)
        primary = make_geocoder("nominatim", {"1 Main St, Granby": (45.4, -72.7), "2 Main St, Granby": (45.5, -72.8)})
        orchestrator = IngestionOrchestrator(
            store, marker_sink, GeocodingService(primary), retry_delay=0.0, sleep=no_sleep
        )
        runner = InProcessTaskRunner()

        job = await submit_ingestion(
            orchestrator,
            raw_text=TWO_CAFES,
            file_name="upload.csv",
            user_id="user-1",
            map_id="map-1",
            column_mapping=ADDRESS_MAPPING,
            runner=runner,
        )
        await runner.wait_all()

        failed = await store.get(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.markers_added == 1
        assert await marker_sink.count_markers("user-1", "map-1") == 1

        await retry_ingestion(orchestrator, job.id, runner=runner)
        await runner.wait_all()

        done = await store.get(job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.markers_added == 1
        assert done.duplicates == 1
        assert await marker_sink.count_markers("user-1", "map-1") == 2
        assert [query for query, _ in primary.queries].count("1 Main St, Granby") == 1

    async def test_existing_markers_counted_as_duplicates(self, job_store, marker_sink, make_geocoder) -> None:
        primary = make_geocoder("nominatim", {"1 Main St, Granby": (45.4, -72.7), "2 Main St, Granby": (45.5, -72.8)})
        orchestrator = IngestionOrchestrator(job_store, marker_sink, GeocodingService(primary), retry_delay=0.0)
        await marker_sink.add_marker(
            "user-1", "map-1", MarkerData(name="Cafe", address="1 MAIN ST,  GRANBY", lat=45.4, lng=-72.7)
        )
        job = await job_store.create(
            user_id="user-1", map_id="map-1", file_name="upload.csv", column_mapping=ADDRESS_MAPPING
        )

        await orchestrator.run(TWO_CAFES, ADDRESS_MAPPING, job.id, "user-1", "map-1")

        done = await job_store.get(job.id)
        assert done.markers_added == 1
        assert done.duplicates == 1
        assert await marker_sink.count_markers("user-1", "map-1") == 2
