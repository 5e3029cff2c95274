"""lectio status: configuration and knowledge-base overview."""

from __future__ import annotations

from pathlib import Path

from rich.panel import Panel

from lectio.cli.common import DbOption, console, load_config_or_exit, open_db, resolve_db
from lectio.config import LectioConfig
from lectio.db.repository import Repository
from lectio.db.vectors import VectorIndex


def status_cmd(db: DbOption = None) -> None:
    """Show configuration and ingestion progress."""
    cfg = load_config_or_exit()
    path = resolve_db(db, cfg)

    _show_config_panel(path, cfg)

    if not path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  lectio ingest seed",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    conn = open_db(path)
    try:
        repo = Repository(conn)
        counts = repo.document_status_counts()
        index = VectorIndex.for_model(conn, cfg.embedding.model, cfg.embedding.dimensions)
        lines = [
            f"Documents: [bold]{counts['total']}[/]  |  "
            f"indexed [green]{counts['indexed']}[/]  |  "
            f"pending [yellow]{counts['pending']}[/]  |  "
            f"failed [red]{counts['failed']}[/]",
            f"Chunks: [bold]{repo.count_chunks():,}[/]  |  Vectors: [bold]{index.count():,}[/]",
            f"Vector table: [dim]{index.table}[/]",
        ]
    finally:
        conn.close()

    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))


def _show_config_panel(db: Path, cfg: LectioConfig) -> None:
    db_info = f"{db}"
    if db.exists():
        size_mb = db.stat().st_size / (1024 * 1024)
        db_info = f"{db} ({size_mb:.1f} MB)"
    lines = [
        f"Environment: [bold]{cfg.server.environment}[/]",
        f"Database:    {db_info}",
        f"Embedding:   {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Generation:  {cfg.generation.model}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Lectio[/]", expand=False))
