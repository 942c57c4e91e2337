"""Abstract base geocoder interface for pluggable provider support."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class GeocodingResult:
    """One candidate location returned by a provider, always in (lat, lng) order."""

    latitude: float
    longitude: float
    matched_address: str | None = None
    relevance: float | None = None
    raw_response: dict | None = None

    def __post_init__(self) -> None:
        if not (-90 <= self.latitude <= 90):
            msg = f"latitude must be between -90 and 90, got {self.latitude}"
            raise ValueError(msg)
        if not (-180 <= self.longitude <= 180):
            msg = f"longitude must be between -180 and 180, got {self.longitude}"
            raise ValueError(msg)


class GeocodingProviderError(Exception):
    """Raised when a geocoding provider experiences a transport or service error.

    Distinguishes provider failures (timeout, HTTP error, connection error)
    from a successful response with no match (which returns an empty list).

    Args:
        provider_name: Name of the failing provider.
        message: Human-readable error description.
        status_code: Optional HTTP status code from the provider.
    """

    def __init__(self, provider_name: str, message: str, status_code: int | None = None) -> None:
        self.provider_name = provider_name
        self.message = message
        self.status_code = status_code
        super().__init__(f"{provider_name}: {message}")


class BaseGeocoder(ABC):
    """Abstract geocoder interface. All providers must implement this."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique name identifying this geocoder provider."""

    @property
    def is_configured(self) -> bool:
        """Whether this provider has all required configuration (e.g., API keys)."""
        return True

    @abstractmethod
    async def search(self, query: str, country: str | None = None) -> list[GeocodingResult]:
        """Search for a free-text address.

        Args:
            query: Address string as typed by the user.
            country: Optional ISO 3166-1 alpha-2 code restricting results.

        Returns:
            Matching locations, best first. Empty when nothing matched.

        Raises:
            GeocodingProviderError: On transport or service errors.
        """

    async def geocode(self, query: str, country: str | None = None) -> GeocodingResult | None:
        """Return the best match for an address, or None if nothing matched."""
        results = await self.search(query, country)
        return results[0] if results else None
