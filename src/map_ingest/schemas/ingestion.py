"""Ingestion job Pydantic v2 request/response schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from map_ingest.models.ingestion_job import IngestionJob


class ColumnMappingSchema(BaseModel):
    """Which header holds each marker field."""

    name: str = Field(min_length=1, description="Header of the marker name column")
    address: str | None = Field(default=None, description="Header of the free-text address column")
    lat: str | None = Field(default=None, description="Header of the latitude column")
    lng: str | None = Field(default=None, description="Header of the longitude column")

    @model_validator(mode="after")
    def require_location_columns(self) -> "ColumnMappingSchema":
        has_address = bool(self.address and self.address.strip())
        has_coordinates = bool(self.lat and self.lat.strip() and self.lng and self.lng.strip())
        if not has_address and not has_coordinates:
            msg = "column_mapping needs an address column or both lat and lng columns"
            raise ValueError(msg)
        return self


class IngestionRequest(BaseModel):
    """Bulk upload of delimited text to turn into markers."""

    raw_text: str = Field(description="Delimited text content of the uploaded file")
    file_name: str = Field(min_length=1, max_length=255)
    user_id: str = Field(min_length=1, max_length=128)
    map_id: str = Field(min_length=1, max_length=128)
    column_mapping: ColumnMappingSchema


class RetryRequest(BaseModel):
    """Retry of a failed job, optionally with the file content resupplied."""

    raw_text: str | None = None


class IngestionAcceptedResponse(BaseModel):
    """Acknowledgement returned when a job is scheduled."""

    job_id: UUID
    status: str
    message: str


class JobProgressSchema(BaseModel):
    """Live progress counters of a job."""

    total: int = 0
    processed: int = 0
    geocoding_failures: int = 0
    duplicates: int = 0
    skipped: int = 0
    current_step: str = ""
    step_progress: int = 0
    step_total: int = 0

    model_config = {"from_attributes": True}


class JobResultsSchema(BaseModel):
    """Outcome of a finished job."""

    markers_added: int
    errors: list[str] = Field(default_factory=list)
    processing_time_ms: int | None = None


class IngestionJobResponse(BaseModel):
    """Ingestion job status, progress and results."""

    id: UUID
    user_id: str
    map_id: str
    file_name: str
    status: str
    attempt: int
    column_mapping: dict
    progress: JobProgressSchema
    results: JobResultsSchema | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: IngestionJob) -> "IngestionJobResponse":
        results = None
        if job.has_results:
            results = JobResultsSchema(
                markers_added=job.markers_added or 0,
                errors=job.errors or [],
                processing_time_ms=job.processing_time_ms,
            )
        return cls(
            id=job.id,
            user_id=job.user_id,
            map_id=job.map_id,
            file_name=job.file_name,
            status=job.status,
            attempt=job.attempt,
            column_mapping=job.column_mapping,
            progress=JobProgressSchema.model_validate(job),
            results=results,
            started_at=job.started_at,
            completed_at=job.completed_at,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class IngestionJobListResponse(BaseModel):
    """Recent jobs of one map."""

    items: list[IngestionJobResponse]
