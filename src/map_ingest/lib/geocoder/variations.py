"""Address variations for geocoders that reject messy real-world input.

Free-text addresses pasted from spreadsheets often carry postal codes,
countries or unit details that make a strict geocoder return nothing. The
variations produced here go from the original string to progressively
simpler forms; the caller tries them in order and stops at the first match.
"""

import re

MAX_VARIATIONS = 5

# Canadian postal code (A1A 1A1) or US ZIP / ZIP+4
POSTAL_CODE_RE = re.compile(r"\b(?:[A-Za-z]\d[A-Za-z][ -]?\d[A-Za-z]\d|\d{5}(?:-\d{4})?)\b")

# A segment that is only a two-letter province/state code, optionally followed by a postal code
_REGION_SEGMENT_RE = re.compile(
    r"^(?P<region>[A-Z]{2})(?:\s+(?:[A-Za-z]\d[A-Za-z][ -]?\d[A-Za-z]\d|\d{5}(?:-\d{4})?))?$"
)


def normalize_whitespace(value: str) -> str:
    """Collapse runs of whitespace and strip the ends."""
    return " ".join(value.split())


def split_segments(address: str) -> list[str]:
    """Split an address on commas, dropping empty segments."""
    return [normalize_whitespace(seg) for seg in address.split(",") if seg.strip()]


def find_region(segments: list[str]) -> tuple[int, str] | None:
    """Locate the province/state segment of a split address.

    The first segment (street line) is never treated as a region.

    Args:
        segments: Output of split_segments().

    Returns:
        Tuple of (segment index, upper-case region code), or None.
    """
    for idx, seg in enumerate(segments[1:], start=1):
        match = _REGION_SEGMENT_RE.match(seg)
        if match:
            return idx, match.group("region")
    return None


def strip_postal_codes(segments: list[str]) -> list[str]:
    """Remove postal codes from every segment but the street line."""
    if not segments:
        return []
    cleaned = [segments[0]]
    for seg in segments[1:]:
        stripped = normalize_whitespace(POSTAL_CODE_RE.sub("", seg))
        if stripped:
            cleaned.append(stripped)
    return cleaned


def address_variations(
    address: str,
    *,
    default_region: str | None = None,
    limit: int = MAX_VARIATIONS,
) -> list[str]:
    """Build the ordered list of address forms to try against a geocoder.

    Order:
        1. The original address (whitespace-normalized).
        2. Postal codes removed.
        3. Everything after the province/state segment removed.
        4. Street, city and province/state only.
        5. Street and province/state only.

    The region comes from the address itself when it has one, else from
    ``default_region``. Identical forms are collapsed, so fewer than five
    variations may be returned.

    Args:
        address: Free-text address.
        default_region: Province/state code used when the address has none.
        limit: Maximum number of variations to return.

    Returns:
        Distinct variations, most specific first. Empty for a blank address.
    """
    original = normalize_whitespace(address)
    if not original:
        return []

    segments = split_segments(original)
    street = segments[0]
    found = find_region(segments)

    candidates = [original, ", ".join(strip_postal_codes(segments))]

    if found:
        idx, region = found
        candidates.append(", ".join([*segments[:idx], region]))
        city = segments[idx - 1] if idx >= 2 else None
    else:
        region = default_region.strip().upper() if default_region and default_region.strip() else None
        city = segments[1] if len(segments) >= 2 else None

    if city and region:
        candidates.append(f"{street}, {city}, {region}")
    elif city:
        candidates.append(f"{street}, {city}")
    if region:
        candidates.append(f"{street}, {region}")

    unique: list[str] = []
    for candidate in candidates:
        if candidate and candidate not in unique:
            unique.append(candidate)
    return unique[:limit]
