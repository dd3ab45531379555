"""CLI entry point for devdash.

Commands:
    watch   - Live dashboard for a device
    get     - One-shot cached read of a device resource
    cache   - Inspect and maintain the local cache
    device  - Manage device aliases
    config  - Show configuration
"""

import json
import logging
import sys
import time
from datetime import datetime

import click
import tomlkit
from rich.console import Console
from rich.table import Table

from devdash import __version__
from devdash.cache.cached_fetch import CachedFetchError, cached_fetch
from devdash.cache.data_types import data_type_for_resource
from devdash.cache.file_cache import FileCache, FileCacheError
from devdash.cache.store import CacheKey
from devdash.click_group import DevdashGroup
from devdash.config_manager import ConfigError, ConfigManager, DashConfig, build_store
from devdash.dashboard import run_dashboard
from devdash.devices.rpc_client import DeviceRpcClient, DeviceRpcError
from devdash.panels.cache_status import format_age
from devdash.panels.sources import (
    DEFAULT_PANELS,
    PANEL_NAMES,
    build_sources,
    source_for_data_type,
)

logger = logging.getLogger(__name__)

# Errors whose message is already user-friendly
EXPECTED_ERRORS = (ConfigError, DeviceRpcError, FileCacheError, CachedFetchError)


def _fail(e: Exception) -> None:
    if isinstance(e, EXPECTED_ERRORS):
        click.echo(f"Error: {e}", err=True)
    else:
        logger.debug(f"Unexpected error: {e}", exc_info=True)
        click.echo("Error: An unexpected error occurred. Run with --verbose for details.", err=True)
    sys.exit(1)


def _load_config(ctx: click.Context) -> DashConfig:
    return ConfigManager.load_config(ctx.obj.get("config"))


def _format_time(timestamp: float | None) -> str:
    if timestamp is None:
        return "—"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


@click.group(
    name="devdash",
    cls=DevdashGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option("--config", help="Config file path", type=click.Path())
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """devdash - Terminal dashboard for networked devices.

    Panels show cached device data immediately and refresh it in the
    background when it is older than its TTL.

    \b
    CONFIGURATION:
        Config file: ~/.devdash/config.toml
        Cache:       ~/.devdash/cache

    For help on any command: devdash <command> --help
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["verbose"] = verbose

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


@main.command()
@click.argument("device")
@click.option(
    "--panel",
    "-p",
    "panels",
    multiple=True,
    type=click.Choice(PANEL_NAMES),
    help="Panel to show (repeatable, default: system, webhooks, power, environment)",
)
@click.option("--interval", "-i", type=int, help="Re-validation interval in seconds")
@click.pass_context
def watch(ctx: click.Context, device: str, panels: tuple[str, ...], interval: int | None) -> None:
    """Live dashboard for DEVICE.

    Cached data is shown immediately; stale panels refresh in the background.

    \b
    Examples:
        devdash watch kitchen
        devdash watch 192.168.1.40 -p power -p environment
        devdash watch kitchen -i 10

    \b
    Press Ctrl+C to exit the dashboard.
    """
    try:
        config = _load_config(ctx)
        store = build_store(config)
        if isinstance(store, FileCache):
            try:
                store.cleanup_if_needed(config.cache_cleanup_interval)
            except FileCacheError as e:
                logger.warning(f"Cache cleanup failed: {e}")

        client = DeviceRpcClient(aliases=config.devices, timeout=config.rpc_timeout)
        sources = build_sources(client)
        selected = [sources[name] for name in (panels or DEFAULT_PANELS)]

        run_dashboard(
            selected,
            device,
            store=store,
            ttl_policy=config.ttl_policy(),
            refresh_interval=interval or config.refresh_interval,
        )
    except Exception as e:
        _fail(e)


@main.command()
@click.argument("device")
@click.argument("resource")
@click.option("--refresh", is_flag=True, help="Bypass the cache and fetch from the device")
@click.option("--offline", is_flag=True, help="Only use cached data (stale data accepted)")
@click.pass_context
def get(ctx: click.Context, device: str, resource: str, refresh: bool, offline: bool) -> None:
    """Print RESOURCE of DEVICE as JSON, using the cache when fresh.

    \b
    RESOURCE is one of: info, system, wifi, webhooks, kvs, schedules,
    power, environment (singular forms accepted).

    \b
    Examples:
        devdash get kitchen webhooks
        devdash get kitchen power --refresh
        devdash get kitchen system --offline
    """
    try:
        data_type = data_type_for_resource(resource)
        config = _load_config(ctx)
        client = DeviceRpcClient(aliases=config.devices, timeout=config.rpc_timeout)
        source = source_for_data_type(build_sources(client), data_type) if data_type else None
        if source is None:
            raise click.BadParameter(
                f"Unsupported resource '{resource}' (choose from: {', '.join(PANEL_NAMES)})",
                ctx=ctx,
                param_hint="RESOURCE",
            )

        result = cached_fetch(
            build_store(config),
            CacheKey(device=device, data_type=source.data_type),
            lambda: source.fetch(device),
            ttl=config.ttl_policy().ttl_for(source.data_type),
            codec=source.codec,
            refresh=refresh,
            offline=offline,
        )

        if result.from_cache:
            age = format_age(time.time() - result.captured_at)
            note = f"(cached, updated {age} ago{', stale' if result.stale else ''})"
            click.echo(note, err=True)
        click.echo(json.dumps(result.data, indent=2, sort_keys=True))
    except click.ClickException:
        raise
    except Exception as e:
        _fail(e)


@main.group()
def cache() -> None:
    """Inspect and maintain the local cache."""


def _file_cache(ctx: click.Context) -> FileCache:
    return FileCache(_load_config(ctx).cache_path)


@cache.command(name="show")
@click.pass_context
def cache_show(ctx: click.Context) -> None:
    """Show cache statistics."""
    try:
        file_cache = _file_cache(ctx)
        stats = file_cache.stats()
        meta = file_cache.read_meta()

        table = Table(title=f"Cache: {file_cache.path}", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Entries", str(stats.total_entries))
        table.add_row("Stale entries", str(stats.stale_entries))
        table.add_row("Devices", str(stats.device_count))
        table.add_row("Size", f"{stats.total_size} bytes")
        table.add_row("Oldest entry", _format_time(stats.oldest_entry))
        table.add_row("Newest entry", _format_time(stats.newest_entry))
        table.add_row("Last cleanup", _format_time(meta.last_cleanup or None))
        for data_type, count in sorted(stats.type_counts.items()):
            table.add_row(f"  {data_type}", str(count))

        Console().print(table)
    except Exception as e:
        _fail(e)


@cache.command(name="clear")
@click.option("--device", "-d", help="Only clear entries for this device")
@click.pass_context
def cache_clear(ctx: click.Context, device: str | None) -> None:
    """Remove cached entries (all, or for one device)."""
    try:
        file_cache = _file_cache(ctx)
        if device:
            removed = file_cache.invalidate_device(device)
            click.echo(f"Removed {removed} cached entries for '{device}'.")
        else:
            file_cache.invalidate_all()
            click.echo("Cache cleared.")
    except Exception as e:
        _fail(e)


@cache.command(name="cleanup")
@click.option("--force", is_flag=True, help="Run even if the cleanup interval has not passed")
@click.pass_context
def cache_cleanup(ctx: click.Context, force: bool) -> None:
    """Remove entries past their TTL."""
    try:
        config = _load_config(ctx)
        file_cache = FileCache(config.cache_path)
        interval = 0 if force else config.cache_cleanup_interval
        removed = file_cache.cleanup_if_needed(interval)
        click.echo(f"Removed {removed} stale entries.")
    except Exception as e:
        _fail(e)


@main.group()
def device() -> None:
    """Manage device aliases."""


@device.command(name="add")
@click.argument("name")
@click.argument("host")
@click.pass_context
def device_add(ctx: click.Context, name: str, host: str) -> None:
    """Register NAME as an alias for HOST."""
    try:
        ConfigManager.add_device(name, host, ctx.obj.get("config"))
        click.echo(f"Added device '{name}' -> {host}")
    except Exception as e:
        _fail(e)


@device.command(name="remove")
@click.argument("name")
@click.pass_context
def device_remove(ctx: click.Context, name: str) -> None:
    """Remove the alias NAME and its cached data."""
    try:
        if not ConfigManager.remove_device(name, ctx.obj.get("config")):
            click.echo(f"Error: Device '{name}' not found.", err=True)
            sys.exit(1)
        removed = _file_cache(ctx).invalidate_device(name)
        click.echo(f"Removed device '{name}' ({removed} cached entries dropped)")
    except Exception as e:
        _fail(e)


@device.command(name="list")
@click.pass_context
def device_list(ctx: click.Context) -> None:
    """List device aliases."""
    try:
        config = _load_config(ctx)
        if not config.devices:
            click.echo("No devices configured. Add one with: devdash device add NAME HOST")
            return

        table = Table(show_header=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Host")
        for name in sorted(config.devices):
            table.add_row(name, config.devices[name])
        Console().print(table)
    except Exception as e:
        _fail(e)


@main.group(name="config")
def config_group() -> None:
    """Show configuration."""


@config_group.command(name="show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the effective configuration as TOML."""
    try:
        config_path = ConfigManager.get_config_path(ctx.obj.get("config"))
        config = _load_config(ctx)
        click.echo(f"# {config_path}")
        click.echo(tomlkit.dumps(config.to_dict()))
    except Exception as e:
        _fail(e)


__all__ = ["main"]
