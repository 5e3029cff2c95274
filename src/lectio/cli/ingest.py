"""lectio ingest: crawl commentary pages into the knowledge base.

  lectio ingest seed             Insert a pending row for every NT chapter
  lectio ingest chapter BOOK N   Index one chapter
  lectio ingest book BOOK        Index every chapter of a book (stops on failure)
  lectio ingest batch [--limit]  Index the next pending rows (stops on failure)
  lectio ingest reset            Delete all ingested data (development only)
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator

import typer
from rich.table import Table

from lectio.cli.common import DbOption, console, load_config_or_exit, open_db, resolve_db
from lectio.cli.errors import err_no_api_key, err_reset_not_development, err_unknown_book
from lectio.config import LectioConfig
from lectio.db.repository import Repository
from lectio.db.vectors import VectorIndex
from lectio.ingest.books import UnknownBookError
from lectio.ingest.fetcher import Fetcher
from lectio.ingest.pipeline import IngestionPipeline, IngestReport, IngestResult
from lectio.rag.llm_client import make_embedder, validate_api_key

ingest_app = typer.Typer(help="Crawl and index commentary pages.", no_args_is_help=True)


@contextmanager
def _pipeline(db: Path | None, cfg: LectioConfig, needs_embedder: bool = True) -> Iterator[IngestionPipeline]:
    if needs_embedder:
        try:
            validate_api_key(cfg.embedding.model)
        except EnvironmentError:
            provider = cfg.embedding.model.split("/")[0] if "/" in cfg.embedding.model else "openai"
            console.print(err_no_api_key(provider))
            raise typer.Exit(1)

    conn = open_db(resolve_db(db, cfg))
    try:
        index = VectorIndex.for_model(conn, cfg.embedding.model, cfg.embedding.dimensions)
        fetcher = Fetcher(timeout=cfg.ingest.timeout, delay_seconds=cfg.ingest.delay_seconds)
        yield IngestionPipeline(
            Repository(conn),
            index,
            make_embedder(cfg.embedding.model),
            fetcher=fetcher,
            config=cfg.ingest,
        )
    finally:
        conn.close()


def _print_result(label: str, result: IngestResult) -> None:
    if result.unchanged:
        console.print(f"  [dim]↷ {label}: unchanged[/]")
    elif result.success:
        console.print(f"  [green]✓[/] {label}: {result.chunks} chunks")
    else:
        console.print(f"  [red]✗[/] {label}: {result.error}")


def _print_report(report: IngestReport) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Document")
    table.add_column("Result")
    table.add_column("Chunks", justify="right")
    for item in report.results:
        res = item.result
        status = "[dim]unchanged[/]" if res.unchanged else ("[green]ok[/]" if res.success else f"[red]{res.error}[/]")
        table.add_row(item.id, status, str(res.chunks))
    console.print(table)
    console.print(
        f"Processed [bold]{report.processed}[/]  |  ok [bold]{report.success_count}[/]  |  "
        f"chunks [bold]{report.total_chunks}[/]"
    )


@ingest_app.command("seed")
def seed_cmd(db: DbOption = None) -> None:
    """Insert a pending document row for every New Testament chapter."""
    cfg = load_config_or_exit()
    with _pipeline(db, cfg, needs_embedder=False) as pipeline:
        inserted, total = pipeline.seed()
    console.print(f"[green]✓[/] Seeded {inserted} new of {total} chapter records.")


@ingest_app.command("chapter")
def chapter_cmd(
    book: Annotated[str, typer.Argument(help='Book name, e.g. "John" or "1 Corinthians".')],
    chapter: Annotated[int, typer.Argument(help="Chapter number.")],
    db: DbOption = None,
) -> None:
    """Index one chapter's commentary page."""
    cfg = load_config_or_exit()
    with _pipeline(db, cfg) as pipeline:
        try:
            result = pipeline.index_chapter(book, chapter)
        except UnknownBookError as exc:
            console.print(err_unknown_book(str(exc)))
            raise typer.Exit(1)
    _print_result(f"{book} {chapter}", result)
    if not result.success:
        raise typer.Exit(1)


@ingest_app.command("book")
def book_cmd(
    book: Annotated[str, typer.Argument(help='Book name, e.g. "Romans".')],
    db: DbOption = None,
) -> None:
    """Index every chapter of a book, stopping at the first failure."""
    cfg = load_config_or_exit()
    with _pipeline(db, cfg) as pipeline:
        try:
            report = pipeline.index_book(book)
        except UnknownBookError as exc:
            console.print(err_unknown_book(str(exc)))
            raise typer.Exit(1)
    _print_report(report)
    if report.halted:
        raise typer.Exit(1)


@ingest_app.command("batch")
def batch_cmd(
    limit: Annotated[int, typer.Option("--limit", "-n", min=1, help="Pending rows to index.")] = 5,
    db: DbOption = None,
) -> None:
    """Index the next pending documents, stopping at the first failure."""
    cfg = load_config_or_exit()
    with _pipeline(db, cfg) as pipeline:
        report = pipeline.index_batch(limit)
    if not report.processed:
        console.print("[dim]No pending documents. Run:  lectio ingest seed[/]")
        return
    _print_report(report)
    if report.halted:
        raise typer.Exit(1)


@ingest_app.command("reset")
def reset_cmd(
    db: DbOption = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Delete every ingested document, chunk and vector (development only)."""
    cfg = load_config_or_exit()
    if not cfg.is_development:
        console.print(err_reset_not_development(cfg.server.environment))
        raise typer.Exit(1)
    if not yes and not typer.confirm("Delete all ingested commentary?"):
        raise typer.Exit(0)
    with _pipeline(db, cfg, needs_embedder=False) as pipeline:
        pipeline.reset()
    console.print("[green]✓[/] All ingestion data reset.")
