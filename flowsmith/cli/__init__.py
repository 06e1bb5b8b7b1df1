"""CLI tools: flowsmith init, reload, next-run, ledger, metrics, serve."""

import logging
import sys
from importlib import metadata

import typer

from flowsmith.cli.init_config import init_config_command
from flowsmith.cli.reload_config import reload_config_command

app = typer.Typer(
    name="flowsmith",
    help="Flowsmith: trigger-to-action automation engine.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if not value:
        return
    try:
        version = metadata.version("flowsmith")
    except metadata.PackageNotFoundError:
        version = "unknown"
    typer.echo(f"flowsmith {version}")
    raise typer.Exit(0)


@app.callback()
def _root(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Print version and exit.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command("init")
def init_command(
    path: str = typer.Option(".", "--path", help="Output directory"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing flowsmith.yaml"),
) -> None:
    """Generate default flowsmith.yaml in target directory."""
    try:
        init_config_command(path=path, force=force)
    except FileExistsError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


@app.command("reload")
def reload_command(
    config: str = typer.Option("", "--config", help="Optional config file path"),
) -> None:
    """Reload configuration and print applied/skipped changes."""
    reload_config_command(config=config or None)


@app.command("next-run")
def next_run_command(
    expression: str = typer.Argument(..., help="Cron expression, e.g. '*/5 * * * *'"),
    tz: str = typer.Option("UTC", "--tz", help="IANA timezone the expression is evaluated in"),
    count: int = typer.Option(5, "--count", "-n", help="Number of fire times to print"),
    from_: str = typer.Option("", "--from", help="ISO-8601 start instant (default: now)"),
) -> None:
    """Preview the next fire times of a cron expression."""
    from flowsmith.cli.schedule import next_run_command as _next_run

    _next_run(expression, tz=tz, count=count, from_=from_)


@app.command("ledger")
def ledger_command(
    owner: str = typer.Argument(..., help="Owner id"),
    automation_id: str = typer.Option("", "--automation", help="Filter by automation id"),
    status: str = typer.Option("", "--status", help="pending, success, failure or cancelled"),
    limit: int = typer.Option(20, "--limit", help="Maximum records"),
    ascending: bool = typer.Option(False, "--asc", help="Oldest first"),
    database_url: str = typer.Option("", "--database-url", help="Defaults to FLOWSMITH_DATABASE__URL"),
) -> None:
    """Query execution records of one owner."""
    from flowsmith.cli.ledger import query_command

    query_command(
        owner=owner,
        automation_id=automation_id,
        status=status,
        limit=limit,
        order_desc=not ascending,
        database_url=database_url,
    )


@app.command("metrics")
def metrics_command(
    owner: str = typer.Argument(..., help="Owner id"),
    recent: int = typer.Option(10, "--recent", help="Number of recent executions to include"),
    minutes_saved: float = typer.Option(5.0, "--minutes-saved", help="Estimated minutes saved per success"),
    database_url: str = typer.Option("", "--database-url", help="Defaults to FLOWSMITH_DATABASE__URL"),
) -> None:
    """Print dashboard metrics of one owner as JSON."""
    from flowsmith.cli.ledger import metrics_command as _metrics

    _metrics(
        owner=owner,
        database_url=database_url,
        recent_limit=recent,
        minutes_saved_per_success=minutes_saved,
    )


@app.command("serve")
def serve_command(
    config: str = typer.Option("", "--config", help="Config file path"),
    host: str = typer.Option("", "--host", help="Bind host (default from config)"),
    port: int = typer.Option(0, "--port", help="Bind port (default from config)"),
) -> None:
    """Run the webhook gateway and schedule planner."""
    from flowsmith.cli.serve import serve_command as _serve

    _serve(config=config or None, host=host, port=port)


def main() -> None:
    """CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(130)
