"""Map ingest: bulk address ingestion and geocoding into map markers."""

__version__ = "0.1.0"
