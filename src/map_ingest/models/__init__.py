"""ORM model registry: import all models so Alembic autogenerate discovers them."""

from map_ingest.models.base import Base
from map_ingest.models.ingestion_job import IngestionJob, JobStatus
from map_ingest.models.marker import MapStats, Marker, PublicMarker

__all__ = [
    "Base",
    "IngestionJob",
    "JobStatus",
    "MapStats",
    "Marker",
    "PublicMarker",
]
