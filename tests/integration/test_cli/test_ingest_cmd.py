"""Integration tests for the `map-ingest ingest` CLI commands against a SQLite file database."""

import re
import uuid
from pathlib import Path

import pytest
from typer.testing import CliRunner

from map_ingest.cli.app import app

runner = CliRunner()


@pytest.fixture
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point the CLI at a fresh SQLite database with all tables created."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    result = runner.invoke(app, ["db", "create-tables"])
    assert result.exit_code == 0, result.output
    return url


def _job_id(output: str) -> str:
    match = re.search(r"Ingestion job created: ([0-9a-f-]{36})", output)
    assert match, output
    return match.group(1)


class TestIngestRun:
    def test_coordinate_rows_ingested(self, database: str, tmp_path: Path) -> None:
        upload = tmp_path / "offices.csv"
        upload.write_text("Name;Lat;Lng\nMontreal;45,5;-73,6\nQuebec;46,81;-71,21\nBad;95;10\n", encoding="utf-8")

        result = runner.invoke(
            app,
            ["ingest", "run", str(upload), "--user", "user-1", "--map", "map-1", "--name-column", "Name",
             "--lat-column", "Lat", "--lng-column", "Lng"],
        )

        assert result.exit_code == 0, result.output
        assert ": completed (attempt 1)" in result.output
        assert "Markers added:     2" in result.output
        assert "Skipped:           1" in result.output

    def test_location_columns_required(self, database: str, tmp_path: Path) -> None:
        upload = tmp_path / "names.csv"
        upload.write_text("Name\nCafe\n", encoding="utf-8")

        result = runner.invoke(
            app, ["ingest", "run", str(upload), "--user", "user-1", "--map", "map-1", "--name-column", "Name"]
        )

        assert result.exit_code == 2

    def test_undecodable_file_reported(self, database: str, tmp_path: Path) -> None:
        upload = tmp_path / "latin1.csv"
        upload.write_bytes("Name,Lat,Lng\nCaf\u00e9,45.4,-72.7\n".encode("latin-1"))

        result = runner.invoke(
            app,
            ["ingest", "run", str(upload), "--user", "user-1", "--map", "map-1", "--name-column", "Name",
             "--lat-column", "Lat", "--lng-column", "Lng"],
        )

        assert result.exit_code == 1
        assert "not valid utf-8 text" in result.output
        assert "Traceback" not in result.output

    def test_unknown_encoding_reported(self, database: str, tmp_path: Path) -> None:
        upload = tmp_path / "ok.csv"
        upload.write_text("Name,Lat,Lng\nCafe,45.4,-72.7\n", encoding="utf-8")

        result = runner.invoke(
            app,
            ["ingest", "run", str(upload), "--user", "user-1", "--map", "map-1", "--name-column", "Name",
             "--lat-column", "Lat", "--lng-column", "Lng", "--encoding", "no-such-codec"],
        )

        assert result.exit_code == 1
        assert "unknown encoding" in result.output


class TestIngestStatusAndRetry:
    def test_status_of_failed_job_and_retry(self, database: str, tmp_path: Path) -> None:
        broken = tmp_path / "broken.txt"
        broken.write_text("this is not a table\n", encoding="utf-8")
        result = runner.invoke(
            app,
            ["ingest", "run", str(broken), "--user", "user-1", "--map", "map-1", "--name-column", "Name",
             "--address-column", "Address", "--lat-column", "Lat", "--lng-column", "Lng"],
        )
        assert result.exit_code == 0, result.output
        job_id = _job_id(result.output)

        status = runner.invoke(app, ["ingest", "status", job_id])
        assert status.exit_code == 0, status.output
        assert ": failed (attempt 1)" in status.output
        assert "Error: Parsing failed:" in status.output

        fixed = tmp_path / "fixed.csv"
        fixed.write_text("Name,Address,Lat,Lng\nCafe,1 Main St,45.4,-72.7\n", encoding="utf-8")
        retried = runner.invoke(app, ["ingest", "retry", job_id, "--file", str(fixed)])

        assert retried.exit_code == 0, retried.output
        assert ": completed (attempt 2)" in retried.output
        assert "Markers added:     1" in retried.output

    def test_status_unknown_job(self, database: str) -> None:
        result = runner.invoke(app, ["ingest", "status", str(uuid.uuid4())])

        assert result.exit_code == 1

    def test_retry_completed_job_rejected(self, database: str, tmp_path: Path) -> None:
        upload = tmp_path / "ok.csv"
        upload.write_text("Name,Lat,Lng\nCafe,45.4,-72.7\n", encoding="utf-8")
        result = runner.invoke(
            app,
            ["ingest", "run", str(upload), "--user", "u", "--map", "m", "--name-column", "Name",
             "--lat-column", "Lat", "--lng-column", "Lng"],
        )
        job_id = _job_id(result.output)

        retried = runner.invoke(app, ["ingest", "retry", job_id])

        assert retried.exit_code == 1

    def test_retry_with_undecodable_file_reported(self, database: str, tmp_path: Path) -> None:
        upload = tmp_path / "latin1.csv"
        upload.write_bytes("Name,Lat,Lng\nCaf\u00e9,45.4,-72.7\n".encode("latin-1"))

        result = runner.invoke(app, ["ingest", "retry", str(uuid.uuid4()), "--file", str(upload)])

        assert result.exit_code == 1
        assert "not valid utf-8 text" in result.output
