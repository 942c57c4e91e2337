"""Marker models: owner-scoped markers, their public mirror, and per-map stats."""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Double,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from map_ingest.models.base import Base, TimestampMixin, UUIDMixin

DEFAULT_MARKER_TYPE = "other"

DEFAULT_CATEGORY: dict = {"id": "other", "name": "Other", "icon": "map-pin"}


class Marker(Base, UUIDMixin, TimestampMixin):
    """A map marker owned by a user's map.

    Markers written by an ingestion job keep a reference to the job and the
    data row they came from. They are never removed when the job fails.
    """

    __tablename__ = "markers"

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    map_id: Mapped[str] = mapped_column(String(128), nullable=False)
    job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("ingestion_jobs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    latitude: Mapped[float] = mapped_column(Double, nullable=False)
    longitude: Mapped[float] = mapped_column(Double, nullable=False)
    marker_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default=DEFAULT_MARKER_TYPE, server_default=DEFAULT_MARKER_TYPE
    )
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    category: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    row_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (Index("ix_markers_user_map", "user_id", "map_id"),)


class PublicMarker(Base):
    """Public copy of a marker, readable without the owner's credentials."""

    __tablename__ = "public_map_markers"

    map_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    marker_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    latitude: Mapped[float] = mapped_column(Double, nullable=False)
    longitude: Mapped[float] = mapped_column(Double, nullable=False)
    marker_type: Mapped[str] = mapped_column(String(50), nullable=False, default=DEFAULT_MARKER_TYPE)
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    category: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class MapStats(Base, UUIDMixin):
    """Denormalized marker count for one map."""

    __tablename__ = "map_stats"

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    map_id: Mapped[str] = mapped_column(String(128), nullable=False)
    marker_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "map_id", name="uq_map_stats_user_map"),)
