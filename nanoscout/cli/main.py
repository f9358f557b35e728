"""CLI commands for nanoscout."""

import asyncio
import signal
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from nanoscout import __logo__, __version__
from nanoscout.config.auth import AuthStore
from nanoscout.config.loader import (
    get_settings_path,
    load_settings,
    remove_plugin,
    update_settings_file,
    upsert_plugin,
)
from nanoscout.config.schema import InferenceProviderConfig, PluginInstanceConfig, Settings
from nanoscout.plugins.base import PluginOnboardingApi
from nanoscout.plugins.catalog import build_plugin_catalog
from nanoscout.session.store import SessionStore
from nanoscout.utils.logging import configure_logging

console = Console()

app = typer.Typer(name="nanoscout", help=f"{__logo__} nanoscout - personal agent runtime")

SettingsOption = typer.Option(None, "--settings", "-s", help="Path to settings.json")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} nanoscout v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """nanoscout - personal agent runtime."""
    pass


def _settings_path(path: Optional[Path]) -> Path:
    return (path or get_settings_path()).expanduser()


# ============================================================================
# Runtime
# ============================================================================


async def _run_engine(settings: Settings) -> None:
    from nanoscout.engine import Engine

    engine = Engine(settings)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))

    await engine.start()
    status = engine.get_status()
    console.print(f"[green]✓[/green] Plugins: {', '.join(status['plugins']) or 'none'}")
    console.print(f"[green]✓[/green] Tools: {', '.join(status['tools']) or 'none'}")
    cron_tasks = engine.get_cron_tasks()
    if cron_tasks:
        console.print(f"[green]✓[/green] Cron: {len(cron_tasks)} scheduled tasks")

    try:
        await stop.wait()
    finally:
        console.print("\nShutting down...")
        await engine.shutdown()


@app.command()
def start(
    settings_path: Optional[Path] = SettingsOption,
    verbose: bool = typer.Option(False, "--verbose", help="Verbose console logging"),
):
    """Start the nanoscout engine and run until interrupted."""
    settings = load_settings(_settings_path(settings_path))
    configure_logging(settings.logging, settings.data_path, verbose=verbose)

    console.print(f"{__logo__} Starting nanoscout...")
    asyncio.run(_run_engine(settings))


# ============================================================================
# Inspection
# ============================================================================


@app.command()
def status(settings_path: Optional[Path] = SettingsOption):
    """Show configured plugins, providers and cron tasks."""
    path = _settings_path(settings_path)
    settings = load_settings(path)

    console.print(f"{__logo__} nanoscout Status\n")
    console.print(f"Settings: {path} {'[green]✓[/green]' if path.exists() else '[red]✗[/red]'}")
    console.print(f"Data dir: {settings.data_path} {'[green]✓[/green]' if settings.data_path.exists() else '[red]✗[/red]'}")

    table = Table(title="Configuration")
    table.add_column("Kind", style="cyan")
    table.add_column("Id", style="green")
    table.add_column("Detail")

    for plugin in settings.plugins:
        state = "[green]enabled[/green]" if plugin.enabled else "[dim]disabled[/dim]"
        table.add_row("plugin", plugin.instance_id, f"{plugin.plugin_id} ({state})")
    for index, provider in enumerate(settings.inference_providers(), start=1):
        table.add_row("provider", provider.id, f"#{index} {provider.model or 'default model'}")
    for task in settings.cron.tasks:
        table.add_row("cron", task.id or "-", f"every {task.every_ms:g}ms {'(once)' if task.once else ''}")

    console.print(table)


@app.command()
def sessions(
    settings_path: Optional[Path] = SettingsOption,
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum sessions to show"),
):
    """List stored sessions, most recently updated first."""
    settings = load_settings(_settings_path(settings_path))
    store = SessionStore(settings.data_path / "sessions")
    summaries = store.list_sessions()

    if not summaries:
        console.print("[dim]No sessions yet.[/dim]")
        return

    table = Table(title=f"Sessions ({len(summaries)})")
    table.add_column("Session", style="cyan")
    table.add_column("Source", style="green")
    table.add_column("Channel")
    table.add_column("Updated", style="dim")
    table.add_column("Last message")

    for summary in summaries[:limit]:
        last = summary.last_message or ""
        if summary.last_files:
            last = f"{last} [{len(summary.last_files)} file(s)]".strip()
        table.add_row(
            summary.session_id,
            summary.source,
            summary.context.channel_id,
            summary.updated_at.strftime("%Y-%m-%d %H:%M") if summary.updated_at else "-",
            last[:60],
        )

    console.print(table)


@app.command()
def plugins(settings_path: Optional[Path] = SettingsOption):
    """List available plugins and configured instances."""
    settings = load_settings(_settings_path(settings_path))
    catalog = build_plugin_catalog()

    table = Table(title="Available plugins")
    table.add_column("Plugin", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Description")
    table.add_column("Instances")

    for descriptor in catalog.values():
        instances = [p.instance_id for p in settings.plugins if p.plugin_id == descriptor.id]
        table.add_row(descriptor.id, descriptor.name, descriptor.description, ", ".join(instances) or "-")

    console.print(table)

    unknown = [p for p in settings.plugins if p.plugin_id not in catalog]
    for plugin in unknown:
        console.print(f"[yellow]Warning: {plugin.instance_id} uses unknown plugin {plugin.plugin_id}[/yellow]")


# ============================================================================
# Setup
# ============================================================================


def _prompt(message: str) -> Optional[str]:
    value = typer.prompt(message, default="", show_default=False)
    return value.strip() or None


@app.command()
def add(
    plugin_id: str = typer.Argument(..., help="Plugin id from `nanoscout plugins`"),
    instance_id: Optional[str] = typer.Option(None, "--instance-id", "-i", help="Instance id (defaults to the plugin id)"),
    provider: bool = typer.Option(False, "--provider", help="Also append the instance to the inference provider list"),
    settings_path: Optional[Path] = SettingsOption,
):
    """Configure a plugin instance, running its onboarding prompts."""
    catalog = build_plugin_catalog()
    descriptor = catalog.get(plugin_id)
    if descriptor is None:
        console.print(f"[red]Unknown plugin: {plugin_id}[/red]")
        raise typer.Exit(1)

    path = _settings_path(settings_path)
    settings = load_settings(path)
    instance_id = instance_id or plugin_id
    auth = AuthStore(settings.data_path / "auth.json")
    definition = descriptor.load_definition()

    plugin_settings: dict = {}
    if definition.onboarding:
        result = asyncio.run(definition.onboarding(PluginOnboardingApi(
            instance_id=instance_id,
            plugin_id=plugin_id,
            auth=auth,
            prompt=_prompt,
            note=console.print,
        )))
        if result is None:
            console.print("[yellow]Cancelled.[/yellow]")
            raise typer.Exit(1)
        plugin_settings = result

    try:
        definition.settings_schema.model_validate(plugin_settings)
    except ValidationError as e:
        console.print(f"[red]Invalid settings for {plugin_id}:[/red]\n{e}")
        raise typer.Exit(1)

    entry = PluginInstanceConfig(instance_id=instance_id, plugin_id=plugin_id, settings=plugin_settings)

    def apply(current: Settings) -> Settings:
        updated = current.model_copy(update={"plugins": upsert_plugin(current.plugins, entry)})
        if provider and all(p.id != instance_id for p in current.inference_providers()):
            inference = current.inference.model_copy(update={
                "providers": [*current.inference_providers(), InferenceProviderConfig(id=instance_id)],
            })
            updated = updated.model_copy(update={"inference": inference})
        return updated

    update_settings_file(path, apply)
    logger.debug(f"Plugin instance {instance_id} written to {path}")
    console.print(f"[green]✓[/green] Added {descriptor.name} as {instance_id}")


@app.command()
def remove(
    instance_id: str = typer.Argument(..., help="Instance id to remove"),
    settings_path: Optional[Path] = SettingsOption,
):
    """Remove a plugin instance and its inference provider entry."""
    path = _settings_path(settings_path)
    settings = load_settings(path)
    known = {p.instance_id for p in settings.plugins} | {p.id for p in settings.inference_providers()}
    if instance_id not in known:
        console.print(f"[red]Not configured: {instance_id}[/red]")
        raise typer.Exit(1)

    def apply(current: Settings) -> Settings:
        inference = current.inference.model_copy(update={
            "providers": [p for p in current.inference_providers() if p.id != instance_id],
        })
        return current.model_copy(update={
            "plugins": remove_plugin(current.plugins, instance_id),
            "inference": inference,
        })

    update_settings_file(path, apply)
    AuthStore(settings.data_path / "auth.json").remove(instance_id)
    console.print(f"[green]✓[/green] Removed {instance_id}")


if __name__ == "__main__":
    app()
