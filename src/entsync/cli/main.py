"""
entsync CLI - Main Entry Point.

Provides the `entsync` command for running and inspecting the sync.
"""

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="entsync",
    help="entsync - reconcile entity JSON files with a database table",
    no_args_is_help=True,
)

console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="YAML config file")


def load_settings(config_path: Path | None = None):
    """Settings from an explicit file, or the standard search path."""
    from entsync.core.config import get_settings, load_settings_from_yaml

    if config_path:
        return load_settings_from_yaml(config_path)
    return get_settings()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_async(coro):
    """Run async function from sync context."""
    return asyncio.run(coro)


# =============================================================================
# Core Commands
# =============================================================================


@app.command()
def sweep(
    config: Path | None = ConfigOption,
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON"),
):
    """Run one reconciliation pass and exit."""
    from entsync.service import SyncService

    settings = load_settings(config)
    configure_logging(settings.log_level)

    async def _sweep():
        service = SyncService(settings)
        try:
            return await service.run_sweep()
        finally:
            await service.close()

    result = run_async(_sweep())

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
    elif result.dormant:
        console.print(f"[yellow]Data directory {settings.data_dir} does not exist, nothing to do[/yellow]")
    else:
        table = Table(title="Sweep Summary")
        table.add_column("Metric", style="cyan")
        table.add_column("Count", justify="right")
        table.add_row("Settings pushed", "yes" if result.settings_pushed else "no")
        table.add_row("File -> store", str(result.pushed_to_store))
        table.add_row("Store -> file", str(result.pushed_to_file))
        table.add_row("Materialized", str(result.materialized))
        table.add_row("Stats merged", str(result.stats_merged))
        table.add_row("Skipped", str(result.skipped))
        table.add_row("Failed", str(result.failed))
        console.print(table)
        for error in result.errors:
            console.print(f"[red]{error}[/red]")

    if result.dormant or result.aborted:
        raise typer.Exit(1)


@app.command()
def serve(config: Path | None = ConfigOption):
    """Mount the sync and run periodic sweeps until interrupted."""
    from entsync.service import SyncService

    settings = load_settings(config)
    configure_logging(settings.log_level)
    settings.log_config_info()

    async def _serve() -> bool:
        service = SyncService(settings)
        try:
            if not await service.mount():
                return False
            console.print(f"[green]Syncing {settings.data_dir} every {settings.sync_interval}s[/green]")
            await asyncio.Event().wait()
        finally:
            await service.close()
        return True

    try:
        mounted = run_async(_serve())
    except KeyboardInterrupt:
        console.print("Stopped")
        return

    if not mounted:
        console.print(f"[yellow]Data directory {settings.data_dir} does not exist, sync is dormant[/yellow]")
        raise typer.Exit(1)


@app.command()
def inspect(
    entity_id: str = typer.Argument(..., help="Entity id (file stem / table key)"),
    config: Path | None = ConfigOption,
):
    """Show both sides of one entity and what the next sweep would do."""
    from entsync.core.types import EntityDataError, FileStoreError
    from entsync.service import SyncService
    from entsync.sync.counters import CounterDelta, merge_counters
    from entsync.sync.policy import decide

    settings = load_settings(config)

    async def _inspect():
        service = SyncService(settings)
        try:
            await service.prepare()
            record = await service.entities.find_one(entity_id)
            stats = await service.stats.get(entity_id) if service.stats else None
        finally:
            await service.close()
        return service, record, stats

    service, record, stats = run_async(_inspect())
    files = service.files

    try:
        file_exists = files.exists() and files.file_exists(entity_id)
        file_mtime = files.mtime(entity_id) if file_exists else None
    except FileStoreError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    action = decide(
        file_exists,
        file_mtime,
        record is not None,
        record.last_save if record else None,
    )

    table = Table(title=f"Entity {entity_id}")
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("File", str(files.path_for(entity_id)) if file_exists else "missing")
    table.add_row("File modified", str(file_mtime) if file_mtime else "-")
    table.add_row("Record", "present" if record else "missing")
    table.add_row("Last save", str(record.last_save) if record else "-")
    table.add_row("Owning server", str(record.owning_server) if record else "-")
    table.add_row("Next sweep", action.value)

    if service.stats is not None:
        pending = None
        if file_exists:
            try:
                pending = CounterDelta.from_document(files.read(entity_id))
            except (FileStoreError, EntityDataError) as e:
                table.add_row("File stats", f"[red]unreadable: {e}[/red]")
        current = stats.counters() if stats else {}
        table.add_row("Playtime (s)", str(stats.playtime_seconds) if stats else "0")
        for name in ("kills", "deaths", "captures"):
            table.add_row(name.capitalize(), str(current.get(name, 0)))
        if pending is not None and not pending.is_zero():
            projected = merge_counters(stats, pending, entity_id=entity_id)
            table.add_row(
                "After next sweep",
                ", ".join(f"{k}={v}" for k, v in projected.counters().items()),
            )

    console.print(table)


@app.command()
def config(
    show: bool = typer.Option(False, "--show", "-s", help="Show current configuration"),
    init: bool = typer.Option(False, "--init", "-i", help="Initialize config file"),
    path: Path | None = typer.Option(None, "--path", "-p", help="Config file path"),
):
    """Manage configuration."""
    if init:
        config_path = path or Path.home() / ".entsync" / "config.yaml"
        config_path.parent.mkdir(parents=True, exist_ok=True)

        default_config = """# entsync Configuration
data_dir: ./SquadGame/Saved/KOTH/
database_url: sqlite+aiosqlite:///entsync.db
server_id: 0

# Sweep
sync_enabled: true
sync_interval: 60
pretty_json: true
entity_id_pattern: '^\\d{17}$'

# Settings sentinel
settings_gate_enabled: false
settings_gate_threshold: 50

# Telemetry
telemetry_enabled: false
"""
        config_path.write_text(default_config)
        console.print(f"[green]Created config file:[/green] {config_path}")
        return

    if show:
        settings = load_settings(path)
        table = Table(title="Current Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")

        for field in type(settings).model_fields:
            value = getattr(settings, field)
            if field == "database_url" and "@" in str(value):
                value = "***"
            table.add_row(field, str(value))

        console.print(table)


@app.command()
def version():
    """Show version information."""
    from entsync import __version__

    console.print(f"entsync v{__version__}")


# =============================================================================
# Entry Point
# =============================================================================


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
