"""Turn parsed rows into address candidates according to a user column mapping.

Row-level problems (missing name, no address and no usable coordinates,
coordinates out of range) skip the row and are counted. A mapping that matches
no usable header columns leaves every row without those fields, so every row
is skipped. Only content that is not tabular at all is fatal.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple

from loguru import logger

from map_ingest.lib.extractor.parser import ExtractionError, read_table


@dataclass(frozen=True)
class ColumnMapping:
    """Header names of the columns holding each marker field."""

    name: str
    address: str | None = None
    lat: str | None = None
    lng: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColumnMapping":
        """Build a mapping from a plain dict, treating blank values as unmapped."""

        def _clean(key: str) -> str | None:
            value = data.get(key)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        name = _clean("name")
        if name is None:
            msg = "Column mapping must include a name column"
            raise ExtractionError(msg)
        return cls(name=name, address=_clean("address"), lat=_clean("lat"), lng=_clean("lng"))

    def to_dict(self) -> dict[str, str | None]:
        return {"name": self.name, "address": self.address, "lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class AddressCandidate:
    """One row's extracted marker intent."""

    name: str
    address: str
    row_index: int
    lat: float | None = None
    lng: float | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class ExtractionResult(NamedTuple):
    """Candidates in file order plus the number of rows dropped."""

    candidates: list[AddressCandidate]
    skipped: int


@dataclass(frozen=True)
class _ResolvedColumns:
    name: str
    address: str | None
    lat: str | None
    lng: str | None


def parse_coordinate(value: Any) -> float | None:
    """Coerce a cell to a finite float, accepting a decimal comma.

    Args:
        value: Raw cell value.

    Returns:
        The number, or None if the cell is blank or not numeric.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if "," in text and "." not in text:
        text = text.replace(",", ".")
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def is_valid_latitude(lat: float) -> bool:
    return -90 <= lat <= 90


def is_valid_longitude(lng: float) -> bool:
    return -180 <= lng <= 180


def _find_column(columns: list[str], wanted: str) -> str | None:
    """Exact header match first, then case-insensitive."""
    if wanted in columns:
        return wanted
    lowered = wanted.strip().lower()
    for col in columns:
        if col.lower() == lowered:
            logger.warning(f"Column {wanted!r} matched header {col!r} case-insensitively")
            return col
    return None


def resolve_columns(columns: list[str], mapping: ColumnMapping) -> _ResolvedColumns | None:
    """Match the mapping against the file header.

    Returns:
        The matched header names, or None if the name column is missing or
        neither an address column nor both coordinate columns are present.
    """
    name_col = _find_column(columns, mapping.name)
    if name_col is None:
        logger.warning(f"Name column {mapping.name!r} not found in file header; every row will be skipped")
        return None

    resolved: dict[str, str | None] = {}
    for field in ("address", "lat", "lng"):
        wanted = getattr(mapping, field)
        found = _find_column(columns, wanted) if wanted else None
        if wanted and found is None:
            logger.warning(f"Mapped {field} column {wanted!r} not found in file header; ignoring it")
        resolved[field] = found

    if resolved["lat"] is None or resolved["lng"] is None:
        resolved["lat"] = resolved["lng"] = None

    if resolved["address"] is None and resolved["lat"] is None:
        logger.warning("No mapped address or coordinate column found in file header; every row will be skipped")
        return None

    return _ResolvedColumns(name=name_col, **resolved)


def _cell(row: Mapping[str, Any], column: str | None) -> str:
    if column is None:
        return ""
    value = row.get(column)
    if value is None:
        return ""
    return str(value).strip()


def build_candidate(row: Mapping[str, Any], columns: _ResolvedColumns, row_index: int) -> AddressCandidate | None:
    """Validate one row.

    Returns:
        The candidate, or None if the row must be skipped.
    """
    name = _cell(row, columns.name)
    address = _cell(row, columns.address)
    lat = parse_coordinate(_cell(row, columns.lat))
    lng = parse_coordinate(_cell(row, columns.lng))

    if not name:
        logger.debug(f"Skipping data row {row_index + 1}: missing name")
        return None

    has_pair = lat is not None and lng is not None
    if has_pair and not (is_valid_latitude(lat) and is_valid_longitude(lng)):  # type: ignore[arg-type]
        logger.warning(f"Skipping data row {row_index + 1}: coordinates out of range ({lat}, {lng})")
        return None
    if not has_pair:
        lat = lng = None

    if not address and not has_pair:
        logger.debug(f"Skipping data row {row_index + 1}: no address and no usable coordinates")
        return None

    return AddressCandidate(name=name, address=address, row_index=row_index, lat=lat, lng=lng)


def extract_candidates(
    raw_text: str,
    column_mapping: ColumnMapping | Mapping[str, Any],
) -> ExtractionResult:
    """Parse raw tabular text into address candidates.

    Args:
        raw_text: Uploaded file content.
        column_mapping: Which header holds the name, address, lat and lng.

    Returns:
        ExtractionResult of candidates in file order and the skipped-row count.

    Raises:
        ExtractionError: If the content cannot be read as tabular data or the
            mapping has no name column. No partial result is produced.
    """
    mapping = column_mapping if isinstance(column_mapping, ColumnMapping) else ColumnMapping.from_dict(column_mapping)

    frame = read_table(raw_text)
    columns = resolve_columns(list(frame.columns), mapping)
    if columns is None:
        return ExtractionResult(candidates=[], skipped=len(frame))

    candidates: list[AddressCandidate] = []
    skipped = 0

    for row_index, row in enumerate(frame.to_dict("records")):
        try:
            candidate = build_candidate(row, columns, row_index)
        except (ValueError, TypeError) as e:
            logger.warning(f"Skipping data row {row_index + 1}: could not be read ({e})")
            candidate = None

        if candidate is None:
            skipped += 1
            continue
        candidates.append(candidate)

    logger.info(f"Prepared {len(candidates)} candidates ({skipped} skipped)")
    return ExtractionResult(candidates=candidates, skipped=skipped)
