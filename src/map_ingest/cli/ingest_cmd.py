"""Ingestion CLI commands: run an upload in the foreground, inspect or retry a job."""

import asyncio
import uuid
from pathlib import Path

import typer

from map_ingest.models.ingestion_job import IngestionJob

ingest_app = typer.Typer()


@ingest_app.command("run")
def run_ingest(
    file: Path = typer.Argument(..., help="Delimited text file to ingest", exists=True, dir_okay=False),  # noqa: B008
    user_id: str = typer.Option(..., "--user", help="Owner of the target map"),
    map_id: str = typer.Option(..., "--map", help="Target map"),
    name_column: str = typer.Option(..., "--name-column", help="Header of the marker name column"),
    address_column: str | None = typer.Option(None, "--address-column", help="Header of the address column"),
    lat_column: str | None = typer.Option(None, "--lat-column", help="Header of the latitude column"),
    lng_column: str | None = typer.Option(None, "--lng-column", help="Header of the longitude column"),
    encoding: str = typer.Option("utf-8", "--encoding", help="File encoding"),
) -> None:
    """Ingest a file and wait for the job to finish."""
    if not address_column and not (lat_column and lng_column):
        typer.echo("Error: pass --address-column or both --lat-column and --lng-column", err=True)
        raise typer.Exit(code=2)

    raw_text = _read_upload(file, encoding)
    mapping = {"name": name_column, "address": address_column, "lat": lat_column, "lng": lng_column}
    asyncio.run(_run_ingest(raw_text, file.name, user_id, map_id, mapping))


@ingest_app.command("status")
def job_status(
    job_id: str = typer.Argument(..., help="Ingestion job UUID"),  # noqa: B008
) -> None:
    """Show the progress and results of a job."""
    asyncio.run(_job_status(uuid.UUID(job_id)))


@ingest_app.command("retry")
def retry_job(
    job_id: str = typer.Argument(..., help="Ingestion job UUID"),  # noqa: B008
    file: Path | None = typer.Option(  # noqa: B008
        None, "--file", help="Resupply the file content", exists=True, dir_okay=False
    ),
    encoding: str = typer.Option("utf-8", "--encoding", help="File encoding"),
) -> None:
    """Retry a failed job and wait for it to finish."""
    raw_text = _read_upload(file, encoding) if file is not None else None
    asyncio.run(_retry_job(uuid.UUID(job_id), raw_text))


def _read_upload(file: Path, encoding: str) -> str:
    """Read the upload as text, exiting with code 1 when it cannot be decoded."""
    try:
        return file.read_text(encoding=encoding)
    except LookupError as e:
        typer.echo(f"Error: unknown encoding {encoding!r}", err=True)
        raise typer.Exit(code=1) from e
    except UnicodeDecodeError as e:
        typer.echo(f"Error: {file.name} is not valid {encoding} text ({e.reason} at byte {e.start})", err=True)
        raise typer.Exit(code=1) from e


def _print_job(job: IngestionJob) -> None:
    typer.echo(f"Job {job.id}: {job.status} (attempt {job.attempt})")
    typer.echo(f"  Step:              {job.current_step}")
    typer.echo(f"  Total:             {job.total}")
    typer.echo(f"  Processed:         {job.processed}")
    typer.echo(f"  Geocoding failed:  {job.geocoding_failures}")
    typer.echo(f"  Duplicates:        {job.duplicates}")
    typer.echo(f"  Skipped:           {job.skipped}")
    if job.markers_added is not None:
        typer.echo(f"  Markers added:     {job.markers_added}")
        typer.echo(f"  Time:              {job.processing_time_ms}ms")
    for error in job.errors or []:
        typer.echo(f"  Error: {error}")


async def _run_ingest(raw_text: str, file_name: str, user_id: str, map_id: str, mapping: dict) -> None:
    """Async implementation of a foreground ingestion run."""
    from map_ingest.core.background import task_runner
    from map_ingest.core.config import get_settings
    from map_ingest.core.database import dispose_engine, get_session_factory, init_engine
    from map_ingest.services.ingestion_service import build_orchestrator, submit_ingestion

    settings = get_settings()
    init_engine(settings.database_url)

    try:
        orchestrator = build_orchestrator(settings, get_session_factory())
        job = await submit_ingestion(
            orchestrator,
            raw_text=raw_text,
            file_name=file_name,
            user_id=user_id,
            map_id=map_id,
            column_mapping=mapping,
            retain_raw_content=settings.ingest_retain_raw_content,
            runner=task_runner,
        )
        typer.echo(f"Ingestion job created: {job.id}")
        await task_runner.wait_all()

        job = await orchestrator.job_store.get(job.id)
        if job is not None:
            _print_job(job)
    finally:
        await dispose_engine()


async def _job_status(job_id: uuid.UUID) -> None:
    """Async implementation of the status command."""
    from map_ingest.core.config import get_settings
    from map_ingest.core.database import dispose_engine, get_session_factory, init_engine
    from map_ingest.services.job_store import JobStore

    settings = get_settings()
    init_engine(settings.database_url)

    try:
        job = await JobStore(get_session_factory()).get(job_id)
        if job is None:
            typer.echo(f"Ingestion job {job_id} not found", err=True)
            raise typer.Exit(code=1)
        _print_job(job)
    finally:
        await dispose_engine()


async def _retry_job(job_id: uuid.UUID, raw_text: str | None) -> None:
    """Async implementation of the retry command."""
    from map_ingest.core.background import task_runner
    from map_ingest.core.config import get_settings
    from map_ingest.core.database import dispose_engine, get_session_factory, init_engine
    from map_ingest.services.ingestion_service import build_orchestrator, retry_ingestion

    settings = get_settings()
    init_engine(settings.database_url)

    try:
        orchestrator = build_orchestrator(settings, get_session_factory())
        try:
            job = await retry_ingestion(
                orchestrator,
                job_id,
                raw_text,
                retain_raw_content=settings.ingest_retain_raw_content,
                runner=task_runner,
            )
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e

        typer.echo(f"Retrying ingestion job {job.id} (attempt {job.attempt})")
        await task_runner.wait_all()

        job = await orchestrator.job_store.get(job_id)
        if job is not None:
            _print_job(job)
    finally:
        await dispose_engine()
