"""Unit tests for in-file duplicate detection."""

from map_ingest.lib.extractor import AddressCandidate, DuplicateTracker, candidate_key, normalize_address_key


class TestNormalizeAddressKey:
    def test_case_whitespace_and_symbols(self) -> None:
        assert normalize_address_key("  12  Rue   PRINCIPALE, Granby! ") == "12 rue principale, granby"

    def test_keeps_address_punctuation(self) -> None:
        assert normalize_address_key("Apt. 4-B, 12 Main St.") == "apt. 4-b, 12 main st."


class TestCandidateKey:
    def test_address_rows_key_on_address(self) -> None:
        a = AddressCandidate(name="Cafe", address="1 Main St", row_index=0)
        b = AddressCandidate(name="Other name", address="1  MAIN st", row_index=5)
        assert candidate_key(a) == candidate_key(b)

    def test_coordinate_rows_key_on_name_and_position(self) -> None:
        a = AddressCandidate(name="Cafe", address="", row_index=0, lat=45.5, lng=-73.6)
        b = AddressCandidate(name="cafe ", address="", row_index=1, lat=45.5000000001, lng=-73.6)
        c = AddressCandidate(name="Bakery", address="", row_index=2, lat=45.5, lng=-73.6)
        assert candidate_key(a) == candidate_key(b)
        assert candidate_key(a) != candidate_key(c)


class TestDuplicateTracker:
    def test_second_occurrence_is_duplicate(self) -> None:
        tracker = DuplicateTracker()
        first = AddressCandidate(name="Cafe", address="1 Main St", row_index=0)
        again = AddressCandidate(name="Cafe", address="1 main st", row_index=1)
        other = AddressCandidate(name="Deli", address="2 Main St", row_index=2)

        assert tracker.is_duplicate(first) is False
        assert tracker.is_duplicate(again) is True
        assert tracker.is_duplicate(other) is False

    def test_remembered_markers_are_duplicates(self) -> None:
        tracker = DuplicateTracker()
        tracker.remember(AddressCandidate(name="Cafe", address="1 Main St", row_index=-1))
        tracker.remember(AddressCandidate(name="Pin", address="", row_index=-1, lat=45.4, lng=-72.7))

        assert tracker.is_duplicate(AddressCandidate(name="Cafe", address="1 MAIN  ST", row_index=0)) is True
        assert tracker.is_duplicate(AddressCandidate(name="Pin", address="", row_index=1, lat=45.4, lng=-72.7)) is True
        assert tracker.is_duplicate(AddressCandidate(name="Pin", address="", row_index=2, lat=45.5, lng=-72.7)) is False
