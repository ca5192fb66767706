"""vecsync rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from vecsync.cli.errors import err_config_invalid
    console.print(err_config_invalid(path, exc))
    raise typer.Exit(2)
"""

from __future__ import annotations

from rich.markup import escape


def err_no_config(path: str) -> str:
    """Config file does not exist."""
    return (
        f"[red]Error:[/] Config file not found: '{escape(path)}'.\n"
        "  Pass one with:  vecsync ingest --config path/to/config.yaml"
    )


def err_config_invalid(path: str, exc: Exception) -> str:
    """Config failed validation."""
    return (
        f"[red]Error:[/] Invalid configuration in '{escape(path)}':\n"
        f"  {escape(str(exc))}\n"
        "  Fix the value above and run the command again."
    )


def err_missing_credentials(exc: Exception) -> str:
    """A token or API key needed by the configured sources is not set."""
    return (
        f"[red]Error:[/] {escape(str(exc))}\n"
        "  Credentials are read from the environment only, never from the config file."
    )


def err_no_matching_source(product: str, known: list[str]) -> str:
    """--product does not match any configured source."""
    listed = ", ".join(sorted(set(known))) if known else "(none)"
    return (
        f"[red]Error:[/] No source with product_name '{escape(product)}' in the config.\n"
        f"  Configured products: {escape(listed)}"
    )


def err_no_sources_selected(names: list[str]) -> str:
    """--source filters matched nothing."""
    return (
        f"[red]Error:[/] None of the requested sources exist: {escape(', '.join(names))}.\n"
        "  Use the product_name (or repo) of a configured source."
    )


def err_storage(exc: Exception) -> str:
    """Backend unreachable or database file missing."""
    return (
        f"[red]Error:[/] {escape(str(exc))}\n"
        "  Run:  vecsync ingest --config <config.yaml>  to build the index first."
    )


def err_embedding(exc: Exception) -> str:
    """Query embedding failed."""
    return (
        f"[red]Error:[/] Could not embed the query: {escape(str(exc))}\n"
        "  Check the embedding provider settings and API key."
    )
