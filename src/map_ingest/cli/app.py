"""Typer CLI root application with serve command."""

import typer

from map_ingest.core.config import get_settings
from map_ingest.core.logging import setup_logging

app = typer.Typer(name="map-ingest", help="Bulk address ingestion and geocoding CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Start the API server."""
    import uvicorn

    uvicorn.run(
        "map_ingest.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from map_ingest.cli.db_cmd import db_app
    from map_ingest.cli.ingest_cmd import ingest_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(ingest_app, name="ingest", help="Address ingestion commands")


_register_subcommands()
