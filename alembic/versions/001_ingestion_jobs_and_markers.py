"""Add ingestion_jobs, markers, public_map_markers and map_stats tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "ingestion_jobs",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("map_id", sa.String(128), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("column_mapping", sa.JSON, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        # Progress
        sa.Column("total", sa.Integer, nullable=False, server_default="0"),
        sa.Column("processed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("geocoding_failures", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skipped", sa.Integer, nullable=False, server_default="0"),
        sa.Column("duplicates", sa.Integer, nullable=False, server_default="0"),
        sa.Column("current_step", sa.String(255), nullable=False, server_default="Queued"),
        sa.Column("step_progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("step_total", sa.Integer, nullable=False, server_default="0"),
        # Results
        sa.Column("markers_added", sa.Integer, nullable=True),
        sa.Column("errors", sa.JSON, nullable=True),
        sa.Column("processing_time_ms", sa.Integer, nullable=True),
        sa.Column("attempt", sa.Integer, nullable=False, server_default="1"),
        sa.Column("raw_content", sa.Text, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_ingestion_jobs_status", "ingestion_jobs", ["status"])
    op.create_index("ix_ingestion_jobs_user_map", "ingestion_jobs", ["user_id", "map_id"])

    op.create_table(
        "markers",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("map_id", sa.String(128), nullable=False),
        sa.Column("job_id", sa.Uuid, sa.ForeignKey("ingestion_jobs.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("address", sa.Text, nullable=False),
        sa.Column("latitude", sa.Double, nullable=False),
        sa.Column("longitude", sa.Double, nullable=False),
        sa.Column("marker_type", sa.String(50), nullable=False, server_default="other"),
        sa.Column("visible", sa.Boolean, nullable=False),
        sa.Column("category", sa.JSON, nullable=True),
        sa.Column("row_index", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_markers_user_map", "markers", ["user_id", "map_id"])
    op.create_index("ix_markers_job_id", "markers", ["job_id"])

    op.create_table(
        "public_map_markers",
        sa.Column("map_id", sa.String(128), primary_key=True),
        sa.Column("marker_id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("address", sa.Text, nullable=False),
        sa.Column("latitude", sa.Double, nullable=False),
        sa.Column("longitude", sa.Double, nullable=False),
        sa.Column("marker_type", sa.String(50), nullable=False),
        sa.Column("visible", sa.Boolean, nullable=False),
        sa.Column("category", sa.JSON, nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "map_stats",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("map_id", sa.String(128), nullable=False),
        sa.Column("marker_count", sa.Integer, nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "map_id", name="uq_map_stats_user_map"),
    )


def downgrade() -> None:
    op.drop_table("map_stats")
    op.drop_table("public_map_markers")
    op.drop_index("ix_markers_job_id", table_name="markers")
    op.drop_index("ix_markers_user_map", table_name="markers")
    op.drop_table("markers")
    op.drop_index("ix_ingestion_jobs_user_map", table_name="ingestion_jobs")
    op.drop_index("ix_ingestion_jobs_status", table_name="ingestion_jobs")
    op.drop_table("ingestion_jobs")
