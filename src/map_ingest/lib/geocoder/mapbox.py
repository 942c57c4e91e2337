"""Mapbox Geocoding API (places) provider.

Uses the Mapbox forward geocoding endpoint
(https://docs.mapbox.com/api/search/geocoding-v5/)
for address-to-coordinate resolution. Requires an access token.
Mapbox returns coordinates as ``[lng, lat]``; they are swapped here so the
rest of the system only ever sees ``(lat, lng)``.
"""

from urllib.parse import quote

import httpx
from loguru import logger

from map_ingest.lib.geocoder.base import (
    BaseGeocoder,
    GeocodingProviderError,
    GeocodingResult,
)

MAPBOX_API_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"
DEFAULT_TIMEOUT = 10.0


class MapboxGeocoder(BaseGeocoder):
    """Mapbox geocoder provider."""

    def __init__(
        self,
        api_key: str,
        base_url: str = MAPBOX_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def provider_name(self) -> str:
        return "mapbox"

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _build_url(self, query: str) -> str:
        return f"{self._base_url}/{quote(query, safe='')}.json"

    async def search(self, query: str, country: str | None = None) -> list[GeocodingResult]:
        """Search an address using the Mapbox API.

        Args:
            query: Address string.
            country: Optional ISO country code.

        Returns:
            Matching locations (at most one), empty if no match found.

        Raises:
            GeocodingProviderError: On transport or service errors, or when no
                access token is configured.
        """
        if not self.is_configured:
            raise GeocodingProviderError("mapbox", "Access token not configured")

        params: dict[str, str | int] = {
            "access_token": self._api_key,
            "limit": 1,
        }
        if country:
            params["country"] = country.lower()

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(self._build_url(query), params=params)
                response.raise_for_status()

            data = response.json()
            return self._parse_response(data)

        except httpx.TimeoutException as e:
            logger.warning("Mapbox geocoder timeout for address (redacted)")
            raise GeocodingProviderError("mapbox", "Geocoding request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"Mapbox geocoder HTTP error {e.response.status_code}")
            raise GeocodingProviderError(
                "mapbox",
                f"Provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.ConnectError as e:
            logger.warning("Mapbox geocoder connection error")
            raise GeocodingProviderError("mapbox", "Connection to geocoding provider failed") from e
        except GeocodingProviderError:
            raise
        except Exception as e:
            logger.exception("Mapbox geocoder unexpected error")
            raise GeocodingProviderError("mapbox", f"Unexpected error: {e}") from e

    def _parse_response(self, data: dict) -> list[GeocodingResult]:
        """Parse a Mapbox API response, swapping ``[lng, lat]`` to ``(lat, lng)``."""
        features = data.get("features") or []

        results: list[GeocodingResult] = []
        for feature in features:
            try:
                coords = feature.get("center") or feature["geometry"]["coordinates"]
                lng = float(coords[0])
                lat = float(coords[1])
                results.append(
                    GeocodingResult(
                        latitude=lat,
                        longitude=lng,
                        matched_address=feature.get("place_name") or feature.get("text"),
                        relevance=float(feature["relevance"]) if "relevance" in feature else None,
                        raw_response=feature,
                    )
                )
            except (KeyError, IndexError, ValueError, TypeError) as e:
                logger.warning(f"Failed to parse Mapbox response: {e}")
                raise GeocodingProviderError("mapbox", f"Failed to parse response: {e}") from e
        return results
