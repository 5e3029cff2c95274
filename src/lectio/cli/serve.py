"""lectio serve: run the HTTP API under uvicorn."""

from __future__ import annotations

from typing import Annotated

import typer
import uvicorn

from lectio.api.app import create_app
from lectio.cli.common import DbOption, console, load_config_or_exit
from lectio.rag.llm_client import validate_api_key


def serve_cmd(
    host: Annotated[str | None, typer.Option("--host", help="Bind address (default: server.host).")] = None,
    port: Annotated[int | None, typer.Option("--port", help="Port (default: server.port).")] = None,
    db: DbOption = None,
) -> None:
    """Start the chat, search and admin API."""
    cfg = load_config_or_exit()
    if db is not None:
        cfg.server.db_path = str(db)

    for model in (cfg.generation.model, cfg.embedding.model):
        try:
            validate_api_key(model)
        except EnvironmentError as exc:
            console.print(f"[yellow]Warning:[/] {exc}")

    app = create_app(cfg)
    uvicorn.run(
        app,
        host=host or cfg.server.host,
        port=port or cfg.server.port,
        log_config=None,
    )
