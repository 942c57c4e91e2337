"""Geocoder library for free-text address geocoding against external providers.

Public API:
    - BaseGeocoder: Abstract provider interface
    - GeocodingResult: Result dataclass, always (lat, lng)
    - GeocodingProviderError: Transport/service failure of a provider
    - NominatimGeocoder: OpenStreetMap Nominatim provider (primary)
    - MapboxGeocoder: Mapbox provider (fallback)
    - address_variations: Progressive address simplifications
    - GeocoderConfig: Injected provider configuration
    - build_providers: Construct (primary, fallback) from a GeocoderConfig
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from map_ingest.lib.geocoder.base import BaseGeocoder, GeocodingProviderError, GeocodingResult
from map_ingest.lib.geocoder.mapbox import MAPBOX_API_URL, MapboxGeocoder
from map_ingest.lib.geocoder.nominatim import DEFAULT_USER_AGENT, NOMINATIM_API_URL, NominatimGeocoder
from map_ingest.lib.geocoder.variations import MAX_VARIATIONS, address_variations

if TYPE_CHECKING:
    from map_ingest.core.config import Settings


@dataclass(frozen=True)
class GeocoderConfig:
    """Provider endpoints, credentials and pacing for the geocoding service."""

    country_code: str = "ca"
    default_region: str | None = None
    nominatim_base_url: str = NOMINATIM_API_URL
    nominatim_email: str = ""
    nominatim_user_agent: str = DEFAULT_USER_AGENT
    nominatim_timeout: float = 10.0
    nominatim_min_interval: float = 1.0
    mapbox_base_url: str = MAPBOX_API_URL
    mapbox_api_key: str | None = None
    mapbox_timeout: float = 10.0
    mapbox_variation_interval: float = 0.3
    max_variations: int = MAX_VARIATIONS

    @classmethod
    def from_settings(cls, settings: Settings) -> GeocoderConfig:
        """Build the config from application settings."""
        return cls(
            country_code=settings.geocoder_country_code,
            default_region=settings.geocoder_default_region,
            nominatim_base_url=settings.geocoder_nominatim_base_url,
            nominatim_email=settings.geocoder_nominatim_email,
            nominatim_user_agent=settings.geocoder_nominatim_user_agent,
            nominatim_timeout=settings.geocoder_nominatim_timeout,
            nominatim_min_interval=settings.geocoder_nominatim_min_interval,
            mapbox_base_url=settings.geocoder_mapbox_base_url,
            mapbox_api_key=settings.geocoder_mapbox_api_key,
            mapbox_timeout=settings.geocoder_mapbox_timeout,
            mapbox_variation_interval=settings.geocoder_mapbox_variation_interval,
            max_variations=settings.geocoder_max_variations,
        )


def build_providers(config: GeocoderConfig) -> tuple[BaseGeocoder, BaseGeocoder]:
    """Construct the primary and fallback providers.

    Args:
        config: Provider configuration.

    Returns:
        Tuple of (primary, fallback). The fallback may be unconfigured
        (no access token); callers check ``is_configured``.
    """
    primary = NominatimGeocoder(
        base_url=config.nominatim_base_url,
        timeout=config.nominatim_timeout,
        email=config.nominatim_email,
        user_agent=config.nominatim_user_agent,
    )
    fallback = MapboxGeocoder(
        api_key=config.mapbox_api_key or "",
        base_url=config.mapbox_base_url,
        timeout=config.mapbox_timeout,
    )
    return primary, fallback


__all__ = [
    "BaseGeocoder",
    "GeocoderConfig",
    "GeocodingProviderError",
    "GeocodingResult",
    "MapboxGeocoder",
    "NominatimGeocoder",
    "address_variations",
    "build_providers",
]
