"""Shared test fixtures for the async database, stores, and fake geocoding."""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from map_ingest.core.config import Settings
from map_ingest.lib.geocoder.base import BaseGeocoder, GeocodingProviderError, GeocodingResult
from map_ingest.models import Base
from map_ingest.services.job_store import JobStore
from map_ingest.services.marker_sink import MarkerSink


class FakeGeocoder(BaseGeocoder):
    """Provider answering from a fixed query -> (lat, lng) table and recording every query.

    A value that is an exception instance is raised instead of returned.
    """

    def __init__(self, name: str, answers: dict | None = None, *, configured: bool = True) -> None:
        self._name = name
        self.answers = answers or {}
        self.queries: list[tuple[str, str | None]] = []
        self._configured = configured

    @property
    def provider_name(self) -> str:
        return self._name

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def search(self, query: str, country: str | None = None) -> list[GeocodingResult]:
        self.queries.append((query, country))
        answer = self.answers.get(query)
        if isinstance(answer, GeocodingProviderError):
            raise answer
        if answer is None:
            return []
        lat, lng = answer
        return [GeocodingResult(latitude=lat, longitude=lng, matched_address=query)]


@pytest.fixture
def settings() -> Settings:
    """Test application settings."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        geocoder_mapbox_api_key="test-token",
        ingest_retry_delay=0.0,
        ingest_row_interval=0.0,
        geocoder_nominatim_min_interval=0.0,
        geocoder_mapbox_variation_interval=0.0,
    )


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine shared by every session of a test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
def job_store(session_factory: async_sessionmaker[AsyncSession]) -> JobStore:
    return JobStore(session_factory)


@pytest.fixture
def marker_sink(session_factory: async_sessionmaker[AsyncSession]) -> MarkerSink:
    return MarkerSink(session_factory)


@pytest.fixture
def make_geocoder():
    """Factory for FakeGeocoder providers."""

    def _make(name: str, answers: dict | None = None, *, configured: bool = True) -> FakeGeocoder:
        return FakeGeocoder(name, answers, configured=configured)

    return _make
