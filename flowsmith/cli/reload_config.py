"""``flowsmith reload``: re-read configuration and report what took effect."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from flowsmith.config import ConfigManager
from flowsmith.config.loader import YAMLConfigLoader

console = Console()


def _changes_table(applied: dict[str, object], skipped: dict[str, object]) -> Table:
    table = Table(title="Configuration changes", show_lines=False)
    table.add_column("Setting", no_wrap=True)
    table.add_column("New value")
    table.add_column("Effect")
    for key, value in applied.items():
        table.add_row(key, repr(value), "[green]applied[/green]")
    for key, value in skipped.items():
        table.add_row(key, repr(value), "[yellow]restart required[/yellow]")
    return table


def reload_config_command(config: str | None = None) -> tuple[dict[str, object], dict[str, object]]:
    """Reload every layer; returns ``(applied, skipped)`` keyed by dotted setting path."""
    source = YAMLConfigLoader.resolve_path(config)
    if not source.exists():
        console.print(f"[yellow]No config file at {source}[/yellow]; using defaults and environment")

    result = ConfigManager.instance().reload(config_path=str(source))
    if not result.applied and not result.skipped:
        console.print("Configuration unchanged")
        return result.applied, result.skipped

    console.print(_changes_table(result.applied, result.skipped))
    if result.restart_required:
        console.print("Run [bold]flowsmith serve[/bold] again to pick up restart-only settings")
    return result.applied, result.skipped
