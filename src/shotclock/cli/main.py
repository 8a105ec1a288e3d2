"""Main CLI application."""

import json
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from shotclock import __version__
from shotclock.cli.config_commands import config, get_config_manager
from shotclock.core.models import DerivedClock
from shotclock.core.repository import fetch_latest_commit, find_repository_root

console = Console()
error_console = Console(stderr=True)


def format_duration(delta: timedelta, show_seconds: bool = True) -> str:
    """Format a duration as a shot clock reading.

    Negative durations read as zero.

    Example:
        >>> format_duration(timedelta(hours=1, minutes=2, seconds=3))
        '1h 02m 03s'
    """
    total = max(0, int(delta.total_seconds()))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)

    if hours > 0:
        text = f"{hours}h {minutes:02d}m"
        return f"{text} {secs:02d}s" if show_seconds else text
    elif minutes > 0 or not show_seconds:
        return f"{minutes}m {secs:02d}s" if show_seconds else f"{minutes}m"
    else:
        return f"{secs}s"


def format_datetime(dt: Optional[datetime]) -> str:
    """Format a timestamp in local time for display."""
    if dt is None:
        return "never"
    return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def render_clock(root: Optional[Path], clock: DerivedClock, show_seconds: bool = True) -> Panel:
    """Build the live shot clock panel."""
    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="cyan", justify="right")
    grid.add_column()
    grid.add_row("Repository", str(root) if root else "-")
    grid.add_row(
        "Latest commit", format_datetime(clock.latest_commit if clock.has_commit else None)
    )
    grid.add_row("Active since", format_datetime(clock.earliest_active_time))
    grid.add_row(
        "Commit age",
        f"[bold yellow]{format_duration(clock.commit_age, show_seconds)}[/bold yellow]",
    )
    return Panel(grid, title="Shotclock", border_style="green")


def resolve_directory(ctx: click.Context) -> Path:
    directory: Optional[Path] = ctx.obj.get("directory")
    return directory or Path.cwd()


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    help="Configuration file (default: ~/.shotclock/config.yml)",
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.option(
    "-C",
    "--directory",
    help="Working directory to watch (default: current directory)",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("-v", "--verbose", is_flag=True, help="Log to the console as well")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[Path],
    directory: Optional[Path],
    verbose: bool,
    no_color: bool,
) -> None:
    """Shotclock - time since your last commit, counting only active work.

    The clock restarts on every commit and whenever you come back to the
    keyboard after being away.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["directory"] = directory
    ctx.obj["verbose"] = verbose

    if no_color:
        console.no_color = True


@cli.command()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """Show a live shot clock for the repository.

    Example:
        shotclock watch
        shotclock -C ~/src/project watch
    """
    from shotclock.runtime.session import ShotclockSession, setup_logging

    config_mgr = get_config_manager(ctx)
    setup_logging(config_mgr.get("advanced.log_level", "INFO"), console=ctx.obj.get("verbose"))

    session = ShotclockSession(config_mgr, resolve_directory(ctx))
    composer = session.start()

    if not composer.is_version_controlled:
        session.stop()
        error_console.print(
            f"[red]Error:[/red] {session.directory} is not inside a version-controlled directory"
        )
        sys.exit(1)

    show_seconds = config_mgr.get("display.show_seconds", True)
    repo_root = composer.repository_root

    with Live(
        render_clock(repo_root, composer.clock.value, show_seconds),
        console=console,
        refresh_per_second=config_mgr.get("display.refresh_per_second", 4),
    ) as live:
        try:
            session.run(lambda clock: live.update(render_clock(repo_root, clock, show_seconds)))
        finally:
            session.stop()

    console.print("[yellow]Shotclock stopped[/yellow]")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the repository and the time since its latest commit.

    Example:
        shotclock status
        shotclock status --json
    """
    config_mgr = get_config_manager(ctx)
    directory = resolve_directory(ctx)
    repo_root = find_repository_root(directory, marker=config_mgr.get("repository.marker", ".git"))

    if repo_root is None:
        error_console.print(f"[red]Error:[/red] {directory} is not version controlled")
        sys.exit(1)

    snapshot = fetch_latest_commit(repo_root)
    now = datetime.now().astimezone()
    age = max(timedelta(0), now - snapshot.timestamp) if snapshot else None

    if as_json:
        print(
            json.dumps(
                {
                    "repository_root": str(repo_root),
                    "latest_commit": snapshot.timestamp.isoformat() if snapshot else None,
                    "commit_age_seconds": int(age.total_seconds()) if age is not None else None,
                },
                indent=2,
            )
        )
        return

    table = Table(show_header=False, box=None)
    table.add_column(style="cyan")
    table.add_column()
    table.add_row("Repository", str(repo_root))
    table.add_row("Latest commit", format_datetime(snapshot.timestamp if snapshot else None))
    table.add_row("Commit age", format_duration(age) if age is not None else "-")
    console.print(table)


@cli.command()
@click.pass_context
def root(ctx: click.Context) -> None:
    """Print the repository root for the working directory.

    Exits with status 1 when the directory is not version controlled.
    """
    config_mgr = get_config_manager(ctx)
    directory = resolve_directory(ctx)
    repository_root = find_repository_root(
        directory, marker=config_mgr.get("repository.marker", ".git")
    )

    if repository_root is None:
        error_console.print(f"[red]Error:[/red] {directory} is not version controlled")
        sys.exit(1)

    click.echo(str(repository_root))


@cli.command()
def idle() -> None:
    """Print how long the system has been idle."""
    from shotclock.automation.idle_detector import IdleSamplerError, get_idle_sampler

    try:
        duration = get_idle_sampler().idle_duration()
    except IdleSamplerError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"Idle for {format_duration(duration)}")


cli.add_command(config)


if __name__ == "__main__":
    cli(obj={})
