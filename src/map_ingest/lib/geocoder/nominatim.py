"""OpenStreetMap Nominatim geocoder provider.

Uses the Nominatim API (https://nominatim.org/release-docs/develop/api/Search/)
for address-to-coordinate resolution. Free but rate-limited to 1 req/sec.
"""

import httpx
from loguru import logger

from map_ingest.lib.geocoder.base import (
    BaseGeocoder,
    GeocodingProviderError,
    GeocodingResult,
)

NOMINATIM_API_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_TIMEOUT = 10.0
DEFAULT_USER_AGENT = "map-ingest/1.0"


class NominatimGeocoder(BaseGeocoder):
    """OpenStreetMap Nominatim geocoder provider."""

    def __init__(
        self,
        base_url: str = NOMINATIM_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        email: str = "",
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._base_url = base_url
        self._timeout = timeout
        self._email = email
        self._user_agent = user_agent

    @property
    def provider_name(self) -> str:
        return "nominatim"

    async def search(self, query: str, country: str | None = None) -> list[GeocodingResult]:
        """Search an address using the Nominatim API.

        Args:
            query: Address string.
            country: Optional ISO country code passed as ``countrycodes``.

        Returns:
            Matching locations (at most one), empty if no match found.

        Raises:
            GeocodingProviderError: On transport or service errors.
        """
        params: dict[str, str | int] = {
            "q": query,
            "format": "json",
            "limit": 1,
        }
        if country:
            params["countrycodes"] = country.lower()
        if self._email:
            params["email"] = self._email

        headers = {"User-Agent": self._user_agent}

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(self._base_url, params=params, headers=headers)
                response.raise_for_status()

            data = response.json()
            return self._parse_response(data)

        except httpx.TimeoutException as e:
            logger.warning("Nominatim geocoder timeout for address (redacted)")
            raise GeocodingProviderError("nominatim", "Geocoding request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"Nominatim geocoder HTTP error {e.response.status_code}")
            raise GeocodingProviderError(
                "nominatim",
                f"Provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.ConnectError as e:
            logger.warning("Nominatim geocoder connection error")
            raise GeocodingProviderError("nominatim", "Connection to geocoding provider failed") from e
        except GeocodingProviderError:
            raise
        except Exception as e:
            logger.exception("Nominatim geocoder unexpected error")
            raise GeocodingProviderError("nominatim", f"Unexpected error: {e}") from e

    def _parse_response(self, data: list[dict]) -> list[GeocodingResult]:
        """Parse a Nominatim API response.

        Args:
            data: Raw JSON response (list of results) from Nominatim API.

        Returns:
            Parsed results, empty if no match found.
        """
        if not isinstance(data, list):
            raise GeocodingProviderError("nominatim", "Unexpected response shape")

        results: list[GeocodingResult] = []
        for item in data:
            try:
                lat = float(item["lat"])
                lon = float(item["lon"])
                results.append(
                    GeocodingResult(
                        latitude=lat,
                        longitude=lon,
                        matched_address=item.get("display_name"),
                        relevance=float(item["importance"]) if "importance" in item else None,
                        raw_response=item,
                    )
                )
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Failed to parse Nominatim response: {e}")
                raise GeocodingProviderError("nominatim", f"Failed to parse response: {e}") from e
        return results
