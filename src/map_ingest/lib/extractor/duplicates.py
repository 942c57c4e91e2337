"""Duplicate detection for candidates within one uploaded file."""

import re

from map_ingest.lib.extractor.extractor import AddressCandidate

# Everything except word characters, whitespace and basic address punctuation
_SPECIAL_CHARS_RE = re.compile(r"[^\w\s,.-]")


def normalize_address_key(address: str) -> str:
    """Normalize an address for equality comparison.

    Lower-cases, collapses whitespace and removes special characters other
    than ``,.-``.
    """
    collapsed = " ".join(address.lower().split())
    return _SPECIAL_CHARS_RE.sub("", collapsed)


def candidate_key(candidate: AddressCandidate) -> tuple:
    """Key identifying a candidate for duplicate detection.

    Rows with an address key on the normalized address; coordinate-only rows
    key on their name and coordinates.
    """
    if candidate.address:
        return ("address", normalize_address_key(candidate.address))
    return (
        "coordinates",
        candidate.name.strip().lower(),
        round(candidate.lat or 0.0, 6),
        round(candidate.lng or 0.0, 6),
    )


class DuplicateTracker:
    """Remembers candidate keys seen so far in one run."""

    def __init__(self) -> None:
        self._seen: set[tuple] = set()

    def remember(self, candidate: AddressCandidate) -> None:
        """Record a candidate as already present without checking it."""
        self._seen.add(candidate_key(candidate))

    def is_duplicate(self, candidate: AddressCandidate) -> bool:
        """Return True if an equivalent candidate was already seen; record it otherwise."""
        key = candidate_key(candidate)
        if key in self._seen:
            return True
        self._seen.add(key)
        return False
