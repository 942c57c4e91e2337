"""IngestionJob model: one bulk upload being turned into map markers.

Progress is stored one column per field so that a single-field update from
the pipeline never clobbers a concurrent update to another field.
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from map_ingest.models.base import Base, TimestampMixin, UUIDMixin


class JobStatus(enum.StrEnum):
    """Ingestion job lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class IngestionJob(Base, UUIDMixin, TimestampMixin):
    """Tracks a bulk address-ingestion job for progress reporting and retry.

    Attributes:
        user_id: Owner of the target map.
        map_id: Map the markers are written to.
        file_name: Name of the uploaded file.
        column_mapping: Header names for name/address/lat/lng.
        status: pending, processing, completed or failed.
        total: Candidate rows in the file (0 until parsed).
        processed: Rows handled so far.
        geocoding_failures: Rows no provider could place.
        skipped: Rows dropped by the extractor.
        duplicates: Rows matching an earlier row in the same file.
        current_step: Human-readable phase label.
        step_progress: Progress within the current step.
        step_total: Size of the current step.
        markers_added: Markers actually written (final or partial).
        errors: Error messages recorded when the job finished.
        processing_time_ms: Wall-clock duration of the run.
        attempt: Number of times the job has been run.
        raw_content: Uploaded text, kept until completion for retry.
    """

    __tablename__ = "ingestion_jobs"

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    map_id: Mapped[str] = mapped_column(String(128), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    column_mapping: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.PENDING, server_default=JobStatus.PENDING, index=True
    )

    # Progress counts
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    geocoding_failures: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    duplicates: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_step: Mapped[str] = mapped_column(String(255), nullable=False, default="Queued", server_default="Queued")
    step_progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    step_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    # Results, present once the job has finished
    markers_added: Mapped[int | None] = mapped_column(Integer, nullable=True)
    errors: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    raw_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_ingestion_jobs_user_map", "user_id", "map_id"),)

    @property
    def has_results(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED) and self.markers_added is not None

    def __repr__(self) -> str:
        return f"<IngestionJob {self.id} {self.status} {self.processed}/{self.total}>"
