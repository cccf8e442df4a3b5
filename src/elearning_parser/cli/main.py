"""Main entry point for elearning-access CLI.

Provides a Typer-based CLI for inspecting content packages stored in
directories, zip archives, or S3 buckets.
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from elearning_parser import __version__
from elearning_parser.access.base import FileAccess
from elearning_parser.access.factory import open_file_access
from elearning_parser.config import ParserConfig, ensure_config_exists, get_config_path
from elearning_parser.exceptions import ModuleError
from elearning_parser.logging_config import setup_logging
from elearning_parser.provider import ModuleFileProvider

console = Console()

app = typer.Typer(
    name="elearning-access",
    help="Inspect eLearning content packages",
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"elearning-access version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    log_dir: Path = typer.Option(
        None,
        "--log-dir",
        help="Write a session log to this directory",
    ),
) -> None:
    """elearning-access: Inspect eLearning content packages.

    A package source is a directory, a .zip file, or an s3://bucket/prefix URL.

    ## Commands

    * [bold cyan]info[/bold cyan] - Summary of a package
    * [bold cyan]ls[/bold cyan] - List files
    * [bold cyan]cat[/bold cyan] - Print a file
    * [bold cyan]exists[/bold cyan] - Check files exist
    * [bold cyan]config[/bold cyan] - Manage configuration
    """
    if log_dir is not None:
        setup_logging(log_dir, _load_config().logging.level)


def _load_config() -> ParserConfig:
    try:
        return ParserConfig.load()
    except FileNotFoundError:
        config = ParserConfig()
        config.apply_env_overrides()
        return config


def _open(source: str, cached: bool = False, config: Optional[ParserConfig] = None) -> FileAccess:
    try:
        return open_file_access(source, config=config or _load_config(), cached=cached)
    except ModuleError as e:
        console.print(f"[red]Error opening package: {e}[/red]")
        raise typer.Exit(1)


def _release(access: FileAccess) -> None:
    target = getattr(access, "delegate", access)
    for name in ("shutdown", "close"):
        method = getattr(target, name, None)
        if callable(method):
            method()
            return


def _format_size(size: Optional[int]) -> str:
    if size is None:
        return "(not calculated)"
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return str(size)


@app.command()
def info(
    source: str = typer.Argument(..., help="Package directory, .zip file, or s3:// URL"),
    size: Optional[bool] = typer.Option(
        None,
        "--size/--no-size",
        help="Calculate the total size (default: validation.calculate_module_size)",
    ),
) -> None:
    """Show a summary of a package."""
    config = _load_config()
    access = _open(source, config=config)
    try:
        provider = ModuleFileProvider(
            access,
            validate_file_exists=config.validation.validate_file_exists,
            calculate_module_size=config.validation.calculate_module_size if size is None else size,
        )
        files = access.get_all_files()
        total_size = provider.get_module_size()
        has_xapi = provider.has_xapi_support()
    except ModuleError as e:
        console.print(f"[red]Error reading package: {e}[/red]")
        raise typer.Exit(1)
    finally:
        _release(access)

    panel = Panel.fit(
        f"[cyan]Backend:[/cyan] {type(access).__name__}\n"
        f"[cyan]Root Path:[/cyan] {access.root_path or '(package root)'}\n"
        f"[cyan]Files:[/cyan] {len(files)}\n"
        f"[cyan]Total Size:[/cyan] {_format_size(total_size)}\n"
        f"[cyan]xAPI Support:[/cyan] {'yes' if has_xapi else 'no'}",
        title=source,
        border_style="green",
    )
    console.print(panel)


@app.command("ls")
def list_files(
    source: str = typer.Argument(..., help="Package directory, .zip file, or s3:// URL"),
    directory: str = typer.Argument("", help="Directory inside the package"),
) -> None:
    """List the files in a package directory."""
    access = _open(source)
    try:
        files = access.list_files(directory)
    except ModuleError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        _release(access)

    if not files:
        console.print("[yellow]No files found.[/yellow]")
        return
    for path in files:
        console.print(path, highlight=False)


@app.command("cat")
def cat_file(
    source: str = typer.Argument(..., help="Package directory, .zip file, or s3:// URL"),
    path: str = typer.Argument(..., help="File path inside the package"),
) -> None:
    """Write a package file to standard output."""
    access = _open(source)
    try:
        data = access.read_bytes(path)
    except ModuleError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        _release(access)

    stdout = typer.get_binary_stream("stdout")
    stdout.write(data)
    stdout.flush()


@app.command()
def exists(
    source: str = typer.Argument(..., help="Package directory, .zip file, or s3:// URL"),
    paths: list[str] = typer.Argument(..., help="File paths to check"),
) -> None:
    """Check whether files exist in a package.

    Exits with status 1 if any file is missing or could not be checked.
    """
    access = _open(source)
    try:
        results = access.file_exists_batch(paths)
    finally:
        _release(access)

    table = Table(title="File Existence")
    table.add_column("Path", style="cyan")
    table.add_column("Exists")

    all_found = True
    for path in paths:
        found: Optional[bool] = results.get(path)
        if found is None:
            status = "[yellow]unknown[/yellow]"
            all_found = False
        elif found:
            status = "[green]yes[/green]"
        else:
            status = "[red]no[/red]"
            all_found = False
        table.add_row(path, status)

    console.print(table)
    if not all_found:
        raise typer.Exit(1)


@app.command()
def config(
    action: str = typer.Argument(
        ...,
        help="Action to perform (show, set, path)",
    ),
    key: str = typer.Argument(
        None,
        help="Configuration key (for set action)",
    ),
    value: str = typer.Argument(
        None,
        help="Configuration value (for set action)",
    ),
) -> None:
    """Manage configuration.

    Show, set, or display the path to the configuration file.

    Examples:
        elearning-access config show
        elearning-access config set s3.bucket my-bucket
        elearning-access config path
    """
    if action == "show":
        try:
            cfg = ensure_config_exists()
        except OSError as e:
            console.print(f"[red]Error loading config: {e}[/red]")
            raise typer.Exit(1)

        panel = Panel.fit(
            f"[cyan]Streaming Threshold:[/cyan] {cfg.access.streaming_threshold}\n"
            f"[cyan]Max Cache Entries:[/cyan] {cfg.access.max_cache_entries}\n"
            f"[cyan]Max Workers:[/cyan] {cfg.access.max_workers}\n"
            f"[cyan]Eager Cache:[/cyan] {cfg.access.eager_cache}\n"
            f"[cyan]S3 Bucket:[/cyan] {cfg.s3.bucket or '[not set]'}\n"
            f"[cyan]S3 Endpoint:[/cyan] {cfg.s3.endpoint_url or '[not set]'}\n"
            f"[cyan]S3 Region:[/cyan] {cfg.s3.region or '[not set]'}\n"
            f"[cyan]Validate File Exists:[/cyan] {cfg.validation.validate_file_exists}\n"
            f"[cyan]Calculate Module Size:[/cyan] {cfg.validation.calculate_module_size}\n"
            f"[cyan]Log Directory:[/cyan] {cfg.logging.log_dir}\n"
            f"[cyan]Log Level:[/cyan] {cfg.logging.level}",
            title="Configuration",
            border_style="green",
        )
        console.print(panel)

    elif action == "set":
        if not key or value is None:
            console.print("[red]Usage: elearning-access config set <key> <value>[/red]")
            raise typer.Exit(1)

        try:
            cfg = ensure_config_exists()
            cfg.set(key, value)
            cfg.save()
            console.print(f"[green]Set {key} = {value}[/green]")
        except ValueError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)

    elif action == "path":
        console.print(str(get_config_path()), highlight=False, soft_wrap=True)

    else:
        console.print(f"[red]Unknown action: {action}[/red]")
        console.print("Valid actions: show, set, path")
        raise typer.Exit(1)


def cli_entry() -> None:
    """Entry point for the CLI application."""
    app()


if __name__ == "__main__":
    cli_entry()
