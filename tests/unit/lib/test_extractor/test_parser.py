"""Unit tests for delimited-text parsing."""

import pytest

from map_ingest.lib.extractor.parser import ExtractionError, detect_delimiter, read_table


class TestDetectDelimiter:
    """Tests for delimiter detection from the header line."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Name,Address\nA,B\n", ","),
            ("Name;Address;City\nA;B;C\n", ";"),
            ("Name\tAddress\nA\tB\n", "\t"),
            ("Name|Address\nA|B\n", "|"),
        ],
    )
    def test_detects_each_delimiter(self, text: str, expected: str) -> None:
        assert detect_delimiter(text) == expected

    def test_most_frequent_wins(self) -> None:
        assert detect_delimiter("Name;Address;Lat;Lng, extra\n") == ";"

    def test_leading_blank_lines_ignored(self) -> None:
        assert detect_delimiter("\n\nName;Address\n") == ";"

    def test_no_delimiter_raises(self) -> None:
        with pytest.raises(ExtractionError, match="delimiter"):
            detect_delimiter("just a sentence without separators\nanother line\n")


class TestReadTable:
    """Tests for read_table."""

    def test_basic_comma_file(self) -> None:
        frame = read_table("Name,Address\nCafe,1 Main St\nBakery,2 Main St\n")
        assert list(frame.columns) == ["Name", "Address"]
        assert frame.to_dict("records") == [
            {"Name": "Cafe", "Address": "1 Main St"},
            {"Name": "Bakery", "Address": "2 Main St"},
        ]

    def test_quoted_fields_keep_commas(self) -> None:
        frame = read_table('Name,Address\nCafe,"12 Rue Principale, Granby, QC"\n')
        assert frame.iloc[0]["Address"] == "12 Rue Principale, Granby, QC"

    def test_bom_stripped(self) -> None:
        frame = read_table("﻿Name,Address\nCafe,1 Main St\n")
        assert list(frame.columns) == ["Name", "Address"]

    def test_header_whitespace_stripped(self) -> None:
        frame = read_table(" Name , Address \nCafe,1 Main St\n")
        assert list(frame.columns) == ["Name", "Address"]

    def test_short_rows_padded(self) -> None:
        frame = read_table("Name,Address,Lat\nCafe,1 Main St\n")
        assert frame.iloc[0]["Lat"] == ""

    def test_long_rows_truncated(self) -> None:
        frame = read_table("Name,Address\nCafe,1 Main St,extra,fields\nBakery,2 Main St\n")
        assert list(frame.columns) == ["Name", "Address"]
        assert frame.iloc[0]["Name"] == "Cafe"
        assert frame.iloc[0]["Address"] == "1 Main St"
        assert len(frame) == 2

    def test_values_stay_strings(self) -> None:
        frame = read_table("Name,Zip,Note\n007,01234,NA\n")
        row = frame.iloc[0]
        assert row["Name"] == "007"
        assert row["Zip"] == "01234"
        assert row["Note"] == "NA"

    def test_blank_lines_skipped(self) -> None:
        frame = read_table("Name,Address\n\nCafe,1 Main St\n\n")
        assert len(frame) == 1

    @pytest.mark.parametrize("text", ["", "   \n  \n"])
    def test_empty_content_raises(self, text: str) -> None:
        with pytest.raises(ExtractionError, match="empty"):
            read_table(text)

    def test_binary_content_raises(self) -> None:
        with pytest.raises(ExtractionError, match="binary"):
            read_table("PK\x03\x04\x00\x00,garbage\n")
