"""Shared CLI helpers: config loading and database opening."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from lectio.cli.errors import err_config
from lectio.config import ConfigError, LectioConfig, load_config
from lectio.db.connection import Database
from lectio.db.schema import initialize

console = Console()

DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the database (default: server.db_path)."),
]


def load_config_or_exit() -> LectioConfig:
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def resolve_db(db: Path | None, cfg: LectioConfig) -> Path:
    return db if db is not None else Path(cfg.server.db_path)


def open_db(path: Path) -> sqlite3.Connection:
    conn = Database(path).connect()
    initialize(conn)
    return conn
