"""Unit tests for injected geocoder configuration."""

from map_ingest.core.config import Settings
from map_ingest.lib.geocoder import GeocoderConfig, MapboxGeocoder, NominatimGeocoder, build_providers


class TestGeocoderConfig:
    def test_from_settings(self) -> None:
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
            geocoder_country_code="FR",
            geocoder_default_region=None,
            geocoder_mapbox_api_key="pk.test",
            geocoder_max_variations=3,
        )
        config = GeocoderConfig.from_settings(settings)
        assert config.country_code == "fr"
        assert config.default_region is None
        assert config.mapbox_api_key == "pk.test"
        assert config.max_variations == 3

    def test_build_providers(self) -> None:
        primary, fallback = build_providers(GeocoderConfig(mapbox_api_key="pk.test"))
        assert isinstance(primary, NominatimGeocoder)
        assert isinstance(fallback, MapboxGeocoder)
        assert fallback.is_configured is True

    def test_fallback_unconfigured_without_token(self) -> None:
        _, fallback = build_providers(GeocoderConfig())
        assert fallback.is_configured is False
