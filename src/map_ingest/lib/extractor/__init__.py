"""Extractor library public API.

Provides delimited-text parsing, column-mapping resolution, row validation
into address candidates, and in-file duplicate detection.
"""

from map_ingest.lib.extractor.duplicates import DuplicateTracker, candidate_key, normalize_address_key
from map_ingest.lib.extractor.extractor import (
    AddressCandidate,
    ColumnMapping,
    ExtractionResult,
    extract_candidates,
    parse_coordinate,
)
from map_ingest.lib.extractor.parser import ExtractionError, detect_delimiter, read_table

__all__ = [
    "AddressCandidate",
    "ColumnMapping",
    "DuplicateTracker",
    "ExtractionError",
    "ExtractionResult",
    "candidate_key",
    "detect_delimiter",
    "extract_candidates",
    "normalize_address_key",
    "parse_coordinate",
    "read_table",
]
