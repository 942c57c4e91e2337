"""Geocoding service: resolves one free-text address through primary then fallback providers.

The primary provider is queried once with the original address. When it
fails, the fallback provider is queried with progressively simplified address
variations until one matches. The service reports every outcome as a
GeocodeOutcome and never retries; retry policy belongs to the caller.
"""

import enum
from dataclasses import dataclass

from loguru import logger

from map_ingest.core.rate_limit import NoOpRateGate, RateGate, SleepFunc
from map_ingest.lib.geocoder import GeocoderConfig, build_providers
from map_ingest.lib.geocoder.base import BaseGeocoder, GeocodingProviderError, GeocodingResult
from map_ingest.lib.geocoder.variations import MAX_VARIATIONS, address_variations, normalize_whitespace

NO_RESULTS = "no results"


class ProviderUsed(enum.StrEnum):
    """Which provider produced the coordinates."""

    PRIMARY = "primary"
    FALLBACK = "fallback"
    NONE = "none"


@dataclass(frozen=True)
class GeocodeOutcome:
    """Result of resolving one address.

    Attributes:
        lat: Latitude (0.0 when unsuccessful).
        lng: Longitude (0.0 when unsuccessful).
        success: Whether any provider matched.
        provider_used: primary, fallback or none.
        error: Aggregated provider errors when unsuccessful.
        matched_address: Provider's label for the match.
        query: The address variation that matched.
    """

    lat: float
    lng: float
    success: bool
    provider_used: ProviderUsed
    error: str | None = None
    matched_address: str | None = None
    query: str | None = None

    @classmethod
    def matched(cls, result: GeocodingResult, provider_used: ProviderUsed, query: str) -> "GeocodeOutcome":
        return cls(
            lat=result.latitude,
            lng=result.longitude,
            success=True,
            provider_used=provider_used,
            matched_address=result.matched_address,
            query=query,
        )

    @classmethod
    def failure(cls, error: str) -> "GeocodeOutcome":
        return cls(lat=0.0, lng=0.0, success=False, provider_used=ProviderUsed.NONE, error=error)


class GeocodingService:
    """Primary-then-fallback address resolution.

    Args:
        primary: Provider queried once with the original address.
        fallback: Provider queried with address variations, or None.
        country_code: ISO country code every query is constrained to.
        default_region: Region appended to variations of addresses without one.
        max_variations: Upper bound on fallback variations.
        primary_gate: Pacing for primary provider requests.
        fallback_gate: Pacing between fallback variation requests.
    """

    def __init__(
        self,
        primary: BaseGeocoder,
        fallback: BaseGeocoder | None = None,
        *,
        country_code: str | None = "ca",
        default_region: str | None = None,
        max_variations: int = MAX_VARIATIONS,
        primary_gate: RateGate | None = None,
        fallback_gate: RateGate | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.country_code = country_code
        self.default_region = default_region
        self.max_variations = max_variations
        self._primary_gate = primary_gate or NoOpRateGate()
        self._fallback_gate = fallback_gate or NoOpRateGate()

    @classmethod
    def from_config(cls, config: GeocoderConfig, *, sleep: SleepFunc | None = None) -> "GeocodingService":
        """Build the service and its providers from injected configuration."""
        gate_kwargs = {"sleep": sleep} if sleep is not None else {}
        primary, fallback = build_providers(config)
        return cls(
            primary,
            fallback,
            country_code=config.country_code,
            default_region=config.default_region,
            max_variations=config.max_variations,
            primary_gate=RateGate(config.nominatim_min_interval, **gate_kwargs),
            fallback_gate=RateGate(config.mapbox_variation_interval, **gate_kwargs),
        )

    async def resolve(self, address: str) -> GeocodeOutcome:
        """Resolve an address to coordinates.

        Args:
            address: Free-text address.

        Returns:
            GeocodeOutcome; provider failures are reported, never raised.
        """
        query = normalize_whitespace(address or "")
        if not query:
            return GeocodeOutcome.failure("empty address")

        result, primary_error = await self._query(self.primary, query, self._primary_gate)
        if result is not None:
            return GeocodeOutcome.matched(result, ProviderUsed.PRIMARY, query)

        errors = [f"{self.primary.provider_name}: {primary_error}"]

        if self.fallback is None:
            errors.append("no fallback provider")
        elif not self.fallback.is_configured:
            errors.append(f"{self.fallback.provider_name}: skipped, no access token")
        else:
            variations = address_variations(query, default_region=self.default_region, limit=self.max_variations)
            provider_errors: list[str] = []
            for position, variation in enumerate(variations, start=1):
                result, error = await self._query(self.fallback, variation, self._fallback_gate)
                if result is not None:
                    logger.debug(f"Fallback matched on variation {position}/{len(variations)}")
                    return GeocodeOutcome.matched(result, ProviderUsed.FALLBACK, variation)
                if error != NO_RESULTS:
                    provider_errors.append(error)

            summary = f"{NO_RESULTS} for {len(variations)} variations"
            if provider_errors:
                summary = f"{summary} (last error: {provider_errors[-1]})"
            errors.append(f"{self.fallback.provider_name}: {summary}")

        return GeocodeOutcome.failure("; ".join(errors))

    async def _query(
        self, provider: BaseGeocoder, query: str, gate: RateGate
    ) -> tuple[GeocodingResult | None, str]:
        """Run one paced provider request.

        Returns:
            Tuple of (result or None, error description when no result).
        """
        await gate.acquire()
        try:
            result = await provider.geocode(query, self.country_code)
        except GeocodingProviderError as e:
            return None, e.message
        if result is None:
            return None, NO_RESULTS
        return result, ""
