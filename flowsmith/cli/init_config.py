"""``flowsmith init``: write a starter configuration file."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console

from flowsmith.config.loader import CONFIG_PATH_ENV, YAMLConfigLoader

console = Console()


def init_config_command(path: str = ".", force: bool = False) -> Path:
    """Create ``<path>/flowsmith.yaml``; refuses to overwrite unless *force*."""
    directory = Path(path).expanduser().resolve()
    directory.mkdir(parents=True, exist_ok=True)
    written = YAMLConfigLoader.dump_default(directory, force=force)
    console.print(f"[green]Created[/green] {written}")
    console.print(
        f"Set [bold]database.url[/bold] before [bold]flowsmith serve[/bold]; "
        f"point {CONFIG_PATH_ENV} at this file to use it from elsewhere."
    )
    return written
