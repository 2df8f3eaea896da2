"""Main CLI application for roast."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from roast import __version__
from roast.core.context import NetworkContext
from roast.core.manager import PluginManager, UpgradeStatus
from roast.errors import RoastError

T = TypeVar("T")

# Create the main Typer app
app = typer.Typer(
    name="roast",
    help="Plugin manager for Lightning node daemons",
    add_completion=False,
    no_args_is_help=True,
)
remote_app = typer.Typer(help="Manage plugin repositories", no_args_is_help=True)
app.add_typer(remote_app, name="remote")

console = Console()
error_console = Console(stderr=True)

# Set up logger for the roast package
logger = logging.getLogger("roast")


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbosity: 0=WARNING, 1=INFO, 2+=DEBUG
    """
    if verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logger.setLevel(level)

    # Only add handler if not already configured
    if not logger.handlers:
        handler = RichHandler(
            console=error_console,
            show_time=verbosity >= 2,
            show_path=verbosity >= 3,
            rich_tracebacks=True,
        )
        handler.setLevel(level)
        logger.addHandler(handler)
    else:
        for h in logger.handlers:
            h.setLevel(level)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def get_context(ctx: typer.Context) -> NetworkContext:
    """Build the network context from the global options."""
    options = ctx.obj or {}
    try:
        return NetworkContext.default(network=options.get("network"), data_dir=options.get("data_dir"))
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1) from e


def run_manager(ctx: typer.Context, operation: Callable[[PluginManager], Awaitable[T]]) -> T:
    """Open the manager and run one operation on it.

    Errors are printed and turned into the exit code of the error.
    """
    network = get_context(ctx)

    async def _main() -> T:
        manager = await PluginManager.open(network)
        return await operation(manager)

    try:
        return asyncio.run(_main())
    except RoastError as e:
        print_error(e.message)
        raise typer.Exit(e.code) from e


@app.callback()
def callback(
    ctx: typer.Context,
    network: Annotated[
        str | None,
        typer.Option(
            "--network",
            "-n",
            envvar="ROAST_NETWORK",
            help="Network to manage plugins for (default: bitcoin)",
        ),
    ] = None,
    data_dir: Annotated[
        Path | None,
        typer.Option(
            "--data-dir",
            envvar="ROAST_HOME",
            help="Directory holding roast state (default: ~/.roast)",
        ),
    ] = None,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity (-v info, -vv debug)",
        ),
    ] = 0,
) -> None:
    """roast - plugin manager for Lightning node daemons."""
    setup_logging(verbose)
    ctx.obj = {"network": network, "data_dir": data_dir}


@app.command()
def version() -> None:
    """Show the roast version."""
    console.print(f"roast {__version__}")


@app.command()
def install(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Plugin to install")],
    verbose_install: Annotated[
        bool,
        typer.Option("--verbose-install", help="Show the output of install commands"),
    ] = False,
    dynamic: Annotated[
        bool,
        typer.Option(
            "--dynamic",
            "-d",
            help="Accept a prebuilt executable for languages without an install recipe",
        ),
    ] = False,
) -> None:
    """Install a plugin from the registered repositories."""
    record = run_manager(
        ctx, lambda manager: manager.install(name, verbose=verbose_install, try_dynamic=dynamic)
    )
    print_success(f"Installed {record.name} from {record.repository}")
    console.print(f"  Executable: {record.exec_path}")


@app.command()
def remove(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Plugin to remove")],
) -> None:
    """Remove an installed plugin."""
    result = run_manager(ctx, lambda manager: manager.remove(name))
    print_success(f"Removed {result.plugin_name}")


@app.command("list")
def list_plugins(ctx: typer.Context) -> None:
    """List installed plugins."""
    records = run_manager(ctx, lambda manager: manager.list())

    if not records:
        console.print("No plugins installed")
        return

    table = Table(title="Installed Plugins")
    table.add_column("Plugin", style="cyan")
    table.add_column("Language", style="green")
    table.add_column("Repository", style="dim")
    table.add_column("Executable")

    for record in records:
        table.add_row(record.name, record.lang.value, record.repository, record.exec_path)

    console.print(table)


@app.command()
def upgrade(
    ctx: typer.Context,
    repository: Annotated[
        str | None,
        typer.Argument(help="Repository to upgrade (all if not specified)"),
    ] = None,
    verbose_install: Annotated[
        bool,
        typer.Option("--verbose-install", help="Show the output of install commands"),
    ] = False,
) -> None:
    """Pull repositories and re-install the plugins that changed."""
    summary = run_manager(
        ctx, lambda manager: manager.upgrade(repository, verbose=verbose_install)
    )

    if not summary.results:
        console.print("No repositories to upgrade")
        return

    for result in summary.results:
        if result.status == UpgradeStatus.UP_TO_DATE:
            console.print(f"  {result.repository}: up to date")
        elif result.status == UpgradeStatus.UPDATED:
            plugins = ", ".join(result.plugins) or "no installed plugins"
            print_success(f"{result.repository}: updated ({plugins})")
        else:
            print_error(f"Failed to upgrade {result.repository}: {result.error}")

    if not summary.all_successful:
        raise typer.Exit(1)


@remote_app.command("add")
def remote_add(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Local name of the repository")],
    url: Annotated[str, typer.Argument(help="Git URL of the repository")],
) -> None:
    """Register a plugin repository."""
    info = run_manager(ctx, lambda manager: manager.add_remote(name, url))
    print_success(f"Added repository {info.name}")
    if info.git_head:
        console.print(f"  Commit: {info.git_head}")


@remote_app.command("rm")
def remote_rm(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Local name of the repository")],
) -> None:
    """Remove a repository and every plugin installed from it."""
    removal = run_manager(ctx, lambda manager: manager.rm_remote(name))
    print_success(f"Removed repository {removal.repository}")
    for result in removal.removed_plugins:
        console.print(f"  Removed plugin: {result.plugin_name}")


@remote_app.command("list")
def remote_list(ctx: typer.Context) -> None:
    """List registered repositories."""
    remotes = run_manager(ctx, lambda manager: manager.list_remotes())

    if not remotes:
        console.print("No repositories registered")
        return

    table = Table(title="Repositories")
    table.add_column("Name", style="cyan")
    table.add_column("URL")
    table.add_column("Branch", style="green")
    table.add_column("Commit", style="dim")

    for info in remotes:
        table.add_row(info.name, info.url, info.branch or "", (info.git_head or "")[:12])

    console.print(table)


@app.command()
def setup(
    ctx: typer.Context,
    path: Annotated[
        Path,
        typer.Argument(help="Node config file, or the node data directory"),
    ],
) -> None:
    """Make the node configuration include the installed plugins."""
    host_path = run_manager(ctx, lambda manager: manager.setup(path))
    print_success(f"Node configuration {host_path} includes roast plugins")


@app.command()
def show(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Plugin name")],
) -> None:
    """Show the README of a plugin."""
    result = run_manager(ctx, lambda manager: manager.show(name))
    console.print(result.readme, markup=False, highlight=False, soft_wrap=True)


@app.command()
def nurse(ctx: typer.Context) -> None:
    """Repair the state of roast against what is on disk."""
    report = run_manager(ctx, lambda manager: manager.nurse())

    for warning in report.warnings:
        print_warning(warning)

    if not report.changed:
        print_success("Everything is fine")
        return

    for action in report.actions:
        detail = f" ({action.detail})" if action.detail else ""
        console.print(f"  {action.kind.value}: {action.target}{detail}")
    print_success(f"Performed {len(report.actions)} repair(s)")


if __name__ == "__main__":
    app()
