"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./map_ingest.db",
        description="Async SQLAlchemy connection string (PostgreSQL+asyncpg in production)",
    )

    # Geocoding: general
    geocoder_country_code: str = Field(
        default="ca",
        description="ISO 3166-1 alpha-2 country code every geocoding query is constrained to",
    )
    geocoder_default_region: str | None = Field(
        default="QC",
        description="Province/state appended to simplified address variations when the address has none",
    )

    @field_validator("geocoder_country_code")
    @classmethod
    def validate_country_code(cls, v: str) -> str:
        v = v.strip().lower()
        if not re.match(r"^[a-z]{2}$", v):
            msg = "geocoder_country_code must be a two-letter ISO country code"
            raise ValueError(msg)
        return v

    # Geocoding: Nominatim (OpenStreetMap), primary provider
    geocoder_nominatim_base_url: str = Field(
        default="https://nominatim.openstreetmap.org/search",
        description="Nominatim search endpoint (self-hostable)",
    )
    geocoder_nominatim_email: str = Field(
        default="",
        description="Email for Nominatim usage policy compliance",
    )
    geocoder_nominatim_user_agent: str = Field(
        default="map-ingest/1.0",
        description="User-Agent header sent to Nominatim",
    )
    geocoder_nominatim_timeout: float = Field(
        default=10.0,
        description="Nominatim request timeout in seconds",
        gt=0,
    )
    geocoder_nominatim_min_interval: float = Field(
        default=1.0,
        description="Minimum seconds between Nominatim requests (usage policy: 1 req/sec)",
        ge=0,
    )

    # Geocoding: Mapbox, fallback provider
    geocoder_mapbox_base_url: str = Field(
        default="https://api.mapbox.com/geocoding/v5/mapbox.places",
        description="Mapbox places endpoint",
    )
    geocoder_mapbox_api_key: str | None = Field(
        default=None,
        description="Mapbox access token (fallback provider is disabled without it)",
    )
    geocoder_mapbox_timeout: float = Field(
        default=10.0,
        description="Mapbox request timeout in seconds",
        gt=0,
    )
    geocoder_mapbox_variation_interval: float = Field(
        default=0.3,
        description="Minimum seconds between successive Mapbox address-variation requests",
        ge=0,
    )
    geocoder_max_variations: int = Field(
        default=5,
        description="Maximum address variations tried against the fallback provider",
        ge=1,
        le=5,
    )

    # Ingestion pipeline
    ingest_max_attempts: int = Field(
        default=3,
        description="Geocoding attempts per row before it is counted as a failure",
        ge=1,
    )
    ingest_retry_delay: float = Field(
        default=2.0,
        description="Seconds to wait between geocoding attempts for the same row",
        ge=0,
    )
    ingest_row_interval: float = Field(
        default=1.0,
        description="Minimum seconds between rows that call a geocoding provider",
        ge=0,
    )
    ingest_skip_duplicates: bool = Field(
        default=True,
        description="Count repeated addresses within one file as duplicates instead of adding them again",
    )
    ingest_retain_raw_content: bool = Field(
        default=True,
        description="Keep uploaded content on the job until it completes so a failed job can be retried",
    )
    ingest_max_content_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted upload size in bytes",
        gt=0,
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # CORS
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins (must be explicitly configured)",
    )

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
