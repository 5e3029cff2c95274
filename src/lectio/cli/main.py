"""Lectio CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from lectio.cli.common import console
from lectio.cli.ingest import ingest_app
from lectio.cli.serve import serve_cmd
from lectio.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("lectio")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"lectio {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="lectio",
    help=(
        "Lectio: retrieval-augmented Bible study assistant.\n\n"
        "  lectio ingest  Crawl commentary pages into the knowledge base.\n"
        "  lectio serve   Run the chat / search / admin API."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)."),
    ] = "WARNING",
) -> None:
    """Lectio: retrieval-augmented Bible study assistant."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


app.command("serve")(serve_cmd)
app.command("status")(status_cmd)
app.add_typer(ingest_app, name="ingest")


@app.command("version")
def version_cmd() -> None:
    """Show the installed Lectio version."""
    typer.echo(f"lectio {_installed_version()}")


if __name__ == "__main__":
    app()
