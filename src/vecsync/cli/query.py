"""vecsync query: semantic search over an ingested product."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel

from vecsync.cli.errors import (
    err_config_invalid,
    err_embedding,
    err_no_config,
    err_no_matching_source,
    err_storage,
)
from vecsync.config import ConfigError, GithubSourceConfig, load_config
from vecsync.db.models import QueryFilters
from vecsync.embeddings.providers import create_provider
from vecsync.errors import EmbeddingFailure, StorageError
from vecsync.storage.factory import resolve_storage_target

console = Console()


def query_cmd(
    text: Annotated[str, typer.Argument(help="Natural-language question.")],
    product: Annotated[
        str,
        typer.Option("--product", "-p", help="product_name (or repo) of the source to search."),
    ],
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help="Path to the YAML configuration."),
    ] = Path("config.yaml"),
    version: Annotated[
        str | None,
        typer.Option("--product-version", help="Restrict results to this version."),
    ] = None,
    name: Annotated[
        str | None,
        typer.Option("--name", help="Explicit database file or collection name."),
    ] = None,
    top_k: Annotated[
        int,
        typer.Option("--top-k", "-k", min=1, max=100, help="Number of results."),
    ] = 5,
) -> None:
    """Embed TEXT and print the closest stored chunks."""
    if not config.exists():
        console.print(err_no_config(str(config)))
        raise typer.Exit(2)
    try:
        cfg = load_config(config)
    except ConfigError as exc:
        console.print(err_config_invalid(str(config), exc))
        raise typer.Exit(2)

    matches = [
        s for s in cfg.sources
        if s.product_name == product
        or (isinstance(s, GithubSourceConfig) and s.repo == product)
    ]
    if version:
        matches = [s for s in matches if s.version == version] or matches
    if not matches:
        console.print(err_no_matching_source(product, [s.product_name for s in cfg.sources]))
        raise typer.Exit(2)
    source = matches[0]
    embedding = cfg.embedding_for(source)

    try:
        backend = resolve_storage_target(
            source.database,
            embedding_model=embedding.model,
            name=name,
            product=source.product_name,
            version=version or source.version,
        )
    except StorageError as exc:
        console.print(err_storage(exc))
        raise typer.Exit(1)

    try:
        vector = create_provider(embedding).embed(text)
        results = backend.query(
            vector, QueryFilters(product_name=source.product_name, version=version), top_k
        )
    except EmbeddingFailure as exc:
        console.print(err_embedding(exc))
        raise typer.Exit(1)
    except StorageError as exc:
        console.print(err_storage(exc))
        raise typer.Exit(1)
    finally:
        backend.close()

    if not results:
        console.print("[yellow]No results.[/]")
        return

    for rank, (chunk, distance) in enumerate(results, start=1):
        title = f"{rank}. {chunk.section or chunk.url}  [dim](distance {distance:.4f})[/]"
        body = f"[dim]{chunk.url}[/]\n\n{chunk.content}"
        console.print(Panel(body, title=title, title_align="left"))
