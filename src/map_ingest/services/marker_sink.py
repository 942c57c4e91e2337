"""Marker persistence: owner-scoped write, public mirror and map stats.

The owner-scoped insert is the only write that decides success. The public
mirror and the map marker count are refreshed afterwards on a best-effort
basis; their failures are logged and never reach the caller.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from map_ingest.models.marker import DEFAULT_CATEGORY, DEFAULT_MARKER_TYPE, MapStats, Marker, PublicMarker


@dataclass(frozen=True)
class MarkerData:
    """Fields of a marker to write."""

    name: str
    address: str
    lat: float
    lng: float
    marker_type: str = DEFAULT_MARKER_TYPE
    visible: bool = True
    category: dict = field(default_factory=lambda: dict(DEFAULT_CATEGORY))
    job_id: uuid.UUID | None = None
    row_index: int | None = None


class MarkerSink:
    """Writes markers for a user's map."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add_marker(self, user_id: str, map_id: str, marker: MarkerData) -> uuid.UUID:
        """Persist a marker, then refresh its public mirror and the map stats.

        Args:
            user_id: Map owner.
            map_id: Target map.
            marker: Marker fields.

        Returns:
            The new marker's ID.

        Raises:
            SQLAlchemyError: If the owner-scoped write fails.
        """
        marker_id = uuid.uuid4()
        row = Marker(
            id=marker_id,
            user_id=user_id,
            map_id=map_id,
            job_id=marker.job_id,
            name=marker.name,
            address=marker.address,
            latitude=marker.lat,
            longitude=marker.lng,
            marker_type=marker.marker_type,
            visible=marker.visible,
            category=marker.category,
            row_index=marker.row_index,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()

        await self._mirror(marker_id, user_id, map_id, marker)
        await self._refresh_stats(user_id, map_id)
        return marker_id

    async def _mirror(self, marker_id: uuid.UUID, user_id: str, map_id: str, marker: MarkerData) -> None:
        try:
            async with self._session_factory() as session:
                public = await session.get(PublicMarker, (map_id, marker_id))
                if public is None:
                    public = PublicMarker(map_id=map_id, marker_id=marker_id)
                    session.add(public)
                public.user_id = user_id
                public.name = marker.name
                public.address = marker.address
                public.latitude = marker.lat
                public.longitude = marker.lng
                public.marker_type = marker.marker_type
                public.visible = marker.visible
                public.category = marker.category
                public.synced_at = datetime.now(UTC)
                await session.commit()
        except Exception as e:
            logger.warning(f"Public mirror write failed for marker {marker_id} on map {map_id}: {e}")

    async def _refresh_stats(self, user_id: str, map_id: str) -> None:
        try:
            async with self._session_factory() as session:
                count = (
                    await session.execute(
                        select(func.count(Marker.id)).where(Marker.user_id == user_id, Marker.map_id == map_id)
                    )
                ).scalar_one()
                stats = (
                    await session.execute(
                        select(MapStats).where(MapStats.user_id == user_id, MapStats.map_id == map_id)
                    )
                ).scalar_one_or_none()
                if stats is None:
                    stats = MapStats(user_id=user_id, map_id=map_id)
                    session.add(stats)
                stats.marker_count = count
                stats.last_updated = datetime.now(UTC)
                await session.commit()
        except Exception as e:
            logger.error(f"Map stats update failed for map {map_id}: {e}")

    async def list_markers(self, user_id: str, map_id: str) -> list[MarkerData]:
        """Names, addresses and coordinates of the markers already on a map, oldest first."""
        query = (
            select(Marker.name, Marker.address, Marker.latitude, Marker.longitude)
            .where(Marker.user_id == user_id, Marker.map_id == map_id)
            .order_by(Marker.created_at)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(query)).all()
        return [MarkerData(name=name, address=address or "", lat=lat, lng=lng) for name, address, lat, lng in rows]

    async def count_markers(self, user_id: str, map_id: str) -> int:
        """Count the owner-scoped markers of a map."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(Marker.id)).where(Marker.user_id == user_id, Marker.map_id == map_id)
            )
            return result.scalar_one()
