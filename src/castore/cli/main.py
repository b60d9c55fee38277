# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/cli/main.py

"""
Thin command-line front end for the content repository.

Commands resolve a StoreConfig (config files, then command-line
overrides), open the repository, and report results on a rich console.
"""

from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from castore.config.manager import StoreConfig
from castore.core.repository import Repository, open_from_config
from castore.system.exceptions import CastoreError
from castore.system.logging_setup import setup_logging

app = typer.Typer(
    help="""castore - content-addressed storage repository

[bold blue]Setup:[/bold blue] create, info
[bold green]Content:[/bold green] put, get
""",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        try:
            pkg_version = version("castore")
        except PackageNotFoundError:
            pkg_version = "unknown"
        console.print(f"castore version {pkg_version}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    storage: Optional[str] = typer.Option(None, "--storage", "-s", help="Storage path or volume name"),
    storage_type: Optional[str] = typer.Option(None, "--storage-type", help='One of "fs", "hyperdrive"'),
    pool_size: Optional[int] = typer.Option(None, "--pool-size", help="Maximum concurrent backend handles"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True,
        help="Show version and exit"
    ),
) -> None:
    """castore - content-addressed storage repository."""
    try:
        cfg = StoreConfig.load(config, storage=storage, storage_type=storage_type, pool_size=pool_size)
    except CastoreError as e:
        handle_error("loading configuration", e)
    setup_logging(verbose=verbose, local_log=cfg.local_log)
    ctx.obj = cfg


def handle_error(action: str, error: Exception) -> None:
    console.print(f"[red]✗[/red] Error {escape(action)}: {escape(str(error))}")
    raise typer.Exit(1)


def _open(cfg: StoreConfig) -> tuple[Repository, bool]:
    try:
        return open_from_config(cfg)
    except CastoreError as e:
        handle_error("opening repository", e)


@app.command()
def create(
    ctx: typer.Context,
    source_dir: Optional[Path] = typer.Argument(
        None, exists=True, file_okay=False, dir_okay=True,
        help="Directory to populate the new repository from"
    ),
    manifest_out: Optional[Path] = typer.Option(None, "--manifest", help="Write the import manifest as JSON"),
) -> None:
    """[bold blue]Setup[/bold blue]: Create a repository in the configured storage location."""
    cfg: StoreConfig = ctx.obj
    repo, created = _open(cfg)
    with repo:
        if created:
            console.print("Storage created.")
        else:
            console.print("Storage already existed, not created.")

        if source_dir is None:
            return
        try:
            manifest = repo.import_directory(source_dir)
        except CastoreError as e:
            handle_error(f"importing {source_dir}", e)
        console.print(f"Imported {len(manifest)} file(s) ({manifest.total_size} bytes) from {source_dir}")
        if manifest.skipped:
            console.print(f"[yellow]Skipped {len(manifest.skipped)} symlink(s) or special file(s)[/yellow]")
        if manifest_out is not None:
            manifest_out.write_bytes(manifest.to_json())


@app.command()
def put(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to store"),
) -> None:
    """[bold green]Content[/bold green]: Store a file and print its content key."""
    repo, _ = _open(ctx.obj)
    with repo:
        try:
            with path.open("rb") as f:
                key = repo.put(f)
        except (CastoreError, OSError) as e:
            handle_error(f"storing {path}", e)
    console.print(key)


@app.command()
def get(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Content key"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write content to this file"),
) -> None:
    """[bold green]Content[/bold green]: Retrieve an object by content key."""
    repo, _ = _open(ctx.obj)
    with repo:
        try:
            data = repo.get_bytes(key)
        except CastoreError as e:
            handle_error(f"retrieving {key}", e)
    if output is not None:
        output.write_bytes(data)
    else:
        typer.echo(data.decode("utf-8", errors="replace"), nl=False)


@app.command()
def info(ctx: typer.Context) -> None:
    """[bold blue]Setup[/bold blue]: Show repository details."""
    repo, _ = _open(ctx.obj)
    with repo:
        try:
            details = repo.info()
        except CastoreError as e:
            handle_error("reading repository info", e)

    table = Table(show_header=False, box=None)
    table.add_row("Location", details.location)
    table.add_row("Backend", details.backend)
    table.add_row("Driver", details.driver)
    table.add_row("Pool size", str(details.pool_size))
    table.add_row("Objects", str(details.objects))
    table.add_row("Newly created", "yes" if details.was_created else "no")
    console.print(table)


if __name__ == "__main__":
    app()
