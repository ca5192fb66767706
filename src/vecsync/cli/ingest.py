"""vecsync ingest: reconcile every configured source with its vector store."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from vecsync.cli.errors import (
    err_config_invalid,
    err_missing_credentials,
    err_no_config,
    err_no_sources_selected,
)
from vecsync.config import ConfigError, GithubSourceConfig, check_credentials, load_config
from vecsync.ingest.orchestrator import IngestionOrchestrator, SourceReport

console = Console()

_DEFAULT_CONFIG = "config.yaml"


def ingest_cmd(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help="Path to the YAML configuration."),
    ] = Path(_DEFAULT_CONFIG),
    source: Annotated[
        list[str] | None,
        typer.Option("--source", "-s", help="Only run sources with this product_name or repo (repeatable)."),
    ] = None,
) -> None:
    """Ingest all configured sources, re-embedding only what changed."""
    if not config.exists():
        console.print(err_no_config(str(config)))
        raise typer.Exit(2)

    try:
        cfg = load_config(config)
    except ConfigError as exc:
        console.print(err_config_invalid(str(config), exc))
        raise typer.Exit(2)

    try:
        check_credentials(cfg)
    except ConfigError as exc:
        console.print(err_missing_credentials(exc))
        raise typer.Exit(2)

    selected = cfg.sources
    if source:
        wanted = set(source)
        selected = [
            s for s in cfg.sources
            if s.product_name in wanted
            or (isinstance(s, GithubSourceConfig) and s.repo in wanted)
        ]
        if not selected:
            console.print(err_no_sources_selected(source))
            raise typer.Exit(2)

    with console.status(f"Ingesting {len(selected)} source(s)…"):
        reports = IngestionOrchestrator(cfg).run(selected)

    console.print(_summary_table(reports))

    if any(r.status == "failed" for r in reports):
        raise typer.Exit(1)


def _summary_table(reports: list[SourceReport]) -> Table:
    table = Table(title="Ingestion summary", show_lines=False)
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Docs", justify="right")
    table.add_column("Embedded", justify="right")
    table.add_column("Unchanged", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Removed", justify="right")

    for r in reports:
        if r.status == "failed":
            status = f"[red]failed[/] {escape(r.error or '')}"
        elif r.cleanup_skipped:
            status = "[yellow]ok (cleanup skipped)[/]"
        else:
            status = "[green]ok[/]"
        table.add_row(
            escape(r.source),
            status,
            str(r.documents),
            str(r.embedded),
            str(r.unchanged),
            str(r.failed),
            str(r.deleted),
        )
    return table
