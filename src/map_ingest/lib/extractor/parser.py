"""Delimited-text parser with automatic delimiter detection and ragged-row tolerance.

Parses uploaded spreadsheets exported as CSV (comma, semicolon, tab or pipe
delimited). Rows with more fields than the header are truncated to the
header width; rows with fewer fields are padded with empty values.
"""

import csv
import io
import warnings

import pandas as pd
from loguru import logger

DELIMITER_CANDIDATES = (",", ";", "\t", "|")


class ExtractionError(ValueError):
    """Raised when uploaded content cannot be read as tabular data at all."""


def detect_delimiter(text: str) -> str:
    """Detect the delimiter by counting candidates in the header line.

    Args:
        text: Full file content.

    Returns:
        The detected delimiter character.

    Raises:
        ExtractionError: If the header line contains no known delimiter.
    """
    header_line = next((line for line in text.splitlines() if line.strip()), "")

    counts = {delimiter: header_line.count(delimiter) for delimiter in DELIMITER_CANDIDATES}
    delimiter = max(counts, key=counts.get)  # type: ignore[arg-type]
    if counts[delimiter] == 0:
        msg = "No column delimiter found in the header line; the file does not look like CSV"
        raise ExtractionError(msg)

    logger.debug(f"Detected delimiter: {delimiter!r}")
    return delimiter


def count_long_rows(text: str, delimiter: str, width: int) -> int:
    """Count data rows with more fields than the header."""
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    next(reader, None)
    return sum(1 for row in reader if len(row) > width)


def read_table(raw_text: str) -> pd.DataFrame:
    """Parse delimited text into a DataFrame of trimmed string cells.

    Args:
        raw_text: Uploaded file content.

    Returns:
        DataFrame with stripped column names and ``""`` for missing cells.

    Raises:
        ExtractionError: If the content is empty, binary, has no delimiter,
            or cannot be parsed.
    """
    if raw_text is None or not raw_text.strip():
        msg = "File is empty"
        raise ExtractionError(msg)
    if "\x00" in raw_text:
        msg = "File contains binary data, not delimited text"
        raise ExtractionError(msg)

    text = raw_text.lstrip("\ufeff")
    delimiter = detect_delimiter(text)

    try:
        # index_col=False keeps the first column as data when rows carry extra trailing fields;
        # the truncation warning pandas emits for them is replaced by the log line below
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", pd.errors.ParserWarning)
            frame = pd.read_csv(
                io.StringIO(text),
                sep=delimiter,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                index_col=False,
                engine="python",
            )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, csv.Error, UnicodeError) as e:
        msg = f"Could not parse delimited text: {e}"
        raise ExtractionError(msg) from e

    width = len(frame.columns)
    ragged_rows = count_long_rows(text, delimiter, width)
    if ragged_rows:
        logger.warning(f"Truncated {ragged_rows} row(s) with more fields than the header ({width} columns)")

    frame.columns = [str(col).strip() for col in frame.columns]
    frame = frame.fillna("")

    logger.info(f"Parsed {len(frame)} rows, {width} columns, delimiter={delimiter!r}")
    return frame
