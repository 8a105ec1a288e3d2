"""CLI commands for configuration management."""

import json
import shutil
import sys
from typing import Any

import click
import yaml  # type: ignore[import-untyped]
from rich.console import Console
from rich.table import Table

from shotclock.core.config import ConfigError, ConfigManager

console = Console()
error_console = Console(stderr=True)


def get_config_manager(ctx: click.Context) -> ConfigManager:
    """Load configuration from the path given on the command line.

    Exits with status 1 if the configuration file is invalid.
    """
    obj = ctx.obj or {}
    try:
        return ConfigManager(obj.get("config_path"))
    except ConfigError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def parse_value(value: str) -> Any:
    """Convert a command-line string to a YAML scalar or list.

    Example:
        >>> parse_value("true"), parse_value("1.5"), parse_value("[objects, hooks]")
        (True, 1.5, ['objects', 'hooks'])
    """
    try:
        return yaml.safe_load(value)
    except yaml.YAMLError:
        return value


@click.group()
def config() -> None:
    """Manage Shotclock configuration.

    Configuration is stored in ~/.shotclock/config.yml
    """
    pass


@config.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Show all configuration settings.

    Example:
        shotclock config show
        shotclock config show --json
    """
    config_mgr = get_config_manager(ctx)

    if as_json:
        print(json.dumps(config_mgr.to_dict(), indent=2))
        return

    table = Table(title="Shotclock Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key in config_mgr.get_all_keys():
        table.add_row(key, str(config_mgr.get(key)))

    console.print(table)
    console.print(f"\nConfig file: {config_mgr.config_path}")


@config.command("get")
@click.argument("key")
@click.pass_context
def config_get(ctx: click.Context, key: str) -> None:
    """Get a specific configuration value.

    Uses dot notation to access nested values.

    Example:
        shotclock config get clock.idle_threshold
    """
    config_mgr = get_config_manager(ctx)
    value = config_mgr.get(key)

    if value is None:
        error_console.print(f"[red]Error:[/red] Configuration key '{key}' not found")
        sys.exit(1)

    if isinstance(value, (dict, list)):
        console.print(json.dumps(value, indent=2))
    else:
        console.print(str(value))


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a configuration value.

    Values are parsed as YAML: 'true'/'false' for booleans, numbers,
    and '[a, b]' for lists.

    Example:
        shotclock config set clock.idle_threshold 60
        shotclock config set watch.enabled false
        shotclock config set watch.exclude_dirs "[objects, lfs]"
    """
    config_mgr = get_config_manager(ctx)
    converted_value = parse_value(value)

    try:
        config_mgr.set(key, converted_value)
        console.print(f"[green]✓[/green] Set {key} = {converted_value}")
    except ConfigError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


@config.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def config_reset(ctx: click.Context, yes: bool) -> None:
    """Reset configuration to defaults.

    Example:
        shotclock config reset --yes
    """
    config_mgr = get_config_manager(ctx)

    if not yes:
        console.print("[yellow]Warning:[/yellow] This will reset all configuration to defaults.")
        if not click.confirm("Continue?"):
            console.print("Cancelled")
            return

    # Backup current config
    backup_path = config_mgr.backup_path
    if config_mgr.config_path.exists():
        shutil.copy(config_mgr.config_path, backup_path)
        console.print(f"Backed up current config to {backup_path}")

    config_mgr.reset()
    console.print("[green]✓[/green] Configuration reset to defaults")


@config.command("validate")
@click.pass_context
def config_validate(ctx: click.Context) -> None:
    """Validate configuration file."""
    config_mgr = get_config_manager(ctx)

    try:
        config_mgr.validate()
        console.print("[green]✓[/green] Configuration is valid")
    except ConfigError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


@config.command("path")
@click.pass_context
def config_path(ctx: click.Context) -> None:
    """Show path to configuration file."""
    config_mgr = get_config_manager(ctx)
    console.print(str(config_mgr.config_path))
