"""Serve command: HTTP gateway plus schedule planner in one process."""

from __future__ import annotations

import logging

import uvicorn
from rich.console import Console

from flowsmith.config import ConfigManager
from flowsmith.engine import build_engine
from flowsmith.http.app import create_http_app

console = Console()
logger = logging.getLogger(__name__)


def serve_command(*, config: str | None = None, host: str = "", port: int = 0, log_level: str = "info") -> None:
    manager = ConfigManager.load(config_path=config)
    cfg = manager.get()
    engine = build_engine(cfg)
    manager.on_change(engine.apply_config)
    app = create_http_app(engine, manage_lifecycle=True)
    bind_host = host or cfg.http.host
    bind_port = port or cfg.http.port
    console.print(f"[green]Serving[/green] http://{bind_host}:{bind_port} (planner: {cfg.scheduler.enabled})")
    uvicorn.run(app, host=bind_host, port=bind_port, log_level=log_level)
