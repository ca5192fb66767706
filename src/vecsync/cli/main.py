"""vecsync CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from vecsync.cli.ingest import ingest_cmd
from vecsync.cli.query import query_cmd


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"vecsync {_installed_version()}")
        raise typer.Exit()


def _installed_version() -> str:
    try:
        return importlib.metadata.version("vecsync")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich; DEBUG with --verbose, else INFO."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, markup=False)],
        force=True,
    )
    # Third-party HTTP clients are chatty at INFO.
    for noisy in ("httpx", "httpcore", "LiteLLM", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


app = typer.Typer(
    name="vecsync",
    help=(
        "vecsync: keep a vector index in sync with issue trackers, websites and local docs.\n\n"
        "  vecsync ingest  Re-embed what changed and drop what disappeared.\n"
        "  vecsync query   Semantic search over an ingested product."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output."),
    ] = False,
) -> None:
    """vecsync: incremental vector-index ingestion."""
    configure_logging(verbose)


app.command("ingest")(ingest_cmd)
app.command("query")(query_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed vecsync version."""
    typer.echo(f"vecsync {_installed_version()}")


if __name__ == "__main__":
    app()
