"""
Command-line interface for runtree cache maintenance.

Usage:
    runtree version
    runtree cache list --cache-dir .runtree-cache
    runtree cache clean --yes

Commands themselves are run from Python with ``runtree.run_command``.
"""

from __future__ import annotations

import json
import os
import shutil
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from runtree import __version__
from runtree.cache import list_cache_files
from runtree.config import RunOptions
from runtree.errors import ConfigurationError
from runtree.logging import configure_logging

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="runtree - nested shell command runner with change detection.",
)
cache_app = typer.Typer(help="Inspect and clean the change-detection cache.", no_args_is_help=True)
app.add_typer(cache_app, name="cache")

console = Console()

CacheDirOption = Annotated[
    str | None,
    typer.Option(
        "--cache-dir",
        "-d",
        help="Cache directory (default: RUNTREE_CACHE_DIR or .runtree-cache)",
    ),
]


def _resolve_cache_dir(cache_dir: str | None) -> str:
    try:
        return RunOptions.from_env(cache_dir=cache_dir).cache_dir
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e


@app.callback()
def main_callback(
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Diagnostic log level (default: RUNTREE_LOG_LEVEL)"),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option("--log-format", help="Diagnostic log format: human or json"),
    ] = None,
):
    """runtree - nested shell command runner with change detection."""
    configure_logging(level=log_level, format=log_format)


@app.command("version")
def version_cmd():
    """Show the installed version."""
    console.print(f"runtree {__version__}")


@cache_app.command("list")
def cache_list_cmd(
    cache_dir: CacheDirOption = None,
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
):
    """List persisted hash collections."""
    directory = _resolve_cache_dir(cache_dir)
    entries = list_cache_files(directory)

    if output_json:
        data = [
            {
                "file": os.path.basename(path),
                "algorithm": collection.algorithm if collection else None,
                "entries": len(collection.hashes) if collection else None,
            }
            for path, collection in entries
        ]
        typer.echo(json.dumps(data, indent=2))
        return

    if not entries:
        console.print(f"[dim]No cache files in {directory}[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("File", style="cyan")
    table.add_column("Algorithm")
    table.add_column("Entries", justify="right")
    for path, collection in entries:
        if collection is None:
            table.add_row(os.path.basename(path), "[red]corrupt[/red]", "-")
        else:
            table.add_row(
                os.path.basename(path), collection.algorithm, str(len(collection.hashes))
            )
    console.print(table)


@cache_app.command("clean")
def cache_clean_cmd(
    cache_dir: CacheDirOption = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
):
    """Remove the cache directory, forcing a clean run next time."""
    directory = _resolve_cache_dir(cache_dir)
    if not os.path.isdir(directory):
        console.print(f"[dim]Nothing to clean ({directory} does not exist)[/dim]")
        return

    if not yes and not typer.confirm(f"Remove {directory}?"):
        raise typer.Exit(1)

    shutil.rmtree(directory)
    console.print(f"[green]✓[/green] Removed {directory}")


def main():
    app()


if __name__ == "__main__":
    main()
