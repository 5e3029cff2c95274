"""Commentary ingestion pipeline: fetch → hash → extract → chunk → embed → swap.

Per chapter:
1. Build the deterministic document id and page URL.
2. Fetch the page. A fetch failure is reported and leaves stored state alone.
3. Hash the raw page. An ``indexed`` document with the same hash is skipped.
4. Extract text; pages with less than ``min_chars`` of text are rejected.
5. Truncate to ``snippet_chars`` and chunk by sentences.
6. Mark the row ``pending``, embed every chunk in one batch, then swap the
   chunk set and vector entries and flip the row to ``indexed`` in a single
   transaction (Repository.replace_chunks).
7. Any failure in step 6 marks the row ``failed`` and purges its chunks.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone

from lectio.config import IngestCfg
from lectio.db.models import DOC_INDEXED, DOC_PENDING, SourceDocument
from lectio.db.repository import Repository
from lectio.db.vectors import VectorIndex
from lectio.ingest.books import (
    NT_BOOKS,
    chapter_count,
    chapter_title,
    chapter_url,
    check_chapter,
    doc_id,
)
from lectio.ingest.chunker import SentenceChunker
from lectio.ingest.extractor import content_hash, extract_text
from lectio.ingest.fetcher import Fetcher, FetchError
from lectio.rag.llm_client import Embedder, EmbeddingError

logger = logging.getLogger(__name__)

UNCHANGED = "Already indexed (unchanged)"
TOO_SHORT = "Content too short"


@dataclass
class IngestResult:
    """Outcome of indexing one chapter."""

    success: bool
    chunks: int = 0
    error: str | None = None

    @property
    def unchanged(self) -> bool:
        return self.success and self.error == UNCHANGED

    def to_dict(self) -> dict:
        data: dict = {"success": self.success, "chunks": self.chunks}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ChapterResult:
    id: str
    book: str
    chapter: int
    result: IngestResult

    def to_dict(self) -> dict:
        return {"id": self.id, "book": self.book, "chapter": self.chapter, **self.result.to_dict()}


@dataclass
class IngestReport:
    """Results of a sequential multi-chapter run (book or batch)."""

    results: list[ChapterResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.result.success)

    @property
    def total_chunks(self) -> int:
        return sum(r.result.chunks for r in self.results)

    @property
    def halted(self) -> bool:
        return bool(self.results) and not self.results[-1].result.success

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "success_count": self.success_count,
            "total_chunks": self.total_chunks,
            "halted": self.halted,
            "results": [r.to_dict() for r in self.results],
        }


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class IngestionPipeline:
    """Index commentary chapters into the relational store and vector index.

    Args:
        repo: Repository on an open connection.
        index: Vector index on the same connection.
        embedder: ``(texts) -> vectors`` callable (see llm_client.make_embedder).
        fetcher: Page fetcher; its politeness delay applies per chapter.
        config: Ingest settings (base URL, bounds, chunk budget).
    """

    def __init__(
        self,
        repo: Repository,
        index: VectorIndex,
        embedder: Embedder,
        fetcher: Fetcher | None = None,
        config: IngestCfg | None = None,
    ) -> None:
        self._repo = repo
        self._index = index
        self._embedder = embedder
        self._config = config or IngestCfg()
        self._fetcher = fetcher or Fetcher(
            timeout=self._config.timeout, delay_seconds=self._config.delay_seconds
        )
        self._chunker = SentenceChunker(max_tokens=self._config.max_chunk_tokens)

    # ------------------------------------------------------------------
    # Single chapter
    # ------------------------------------------------------------------

    def index_chapter(self, book: str, chapter: int) -> IngestResult:
        """Fetch, chunk, embed and store one chapter's commentary page.

        Raises:
            UnknownBookError: If *book* / *chapter* is outside the catalogue.
        """
        check_chapter(book, chapter)
        document_id = doc_id(book, chapter)
        url = chapter_url(self._config.base_url, book, chapter)

        try:
            html = self._fetcher.fetch(url)
        except FetchError as exc:
            logger.warning("Fetch failed for %s: %s", document_id, exc)
            return IngestResult(success=False, error=str(exc))

        digest = content_hash(html)
        existing = self._repo.get_document(document_id)
        if existing is not None and existing.status == DOC_INDEXED and existing.content_hash == digest:
            logger.info("%s unchanged, skipping", document_id)
            return IngestResult(success=True, chunks=0, error=UNCHANGED)

        text = extract_text(html)
        if len(text) < self._config.min_chars:
            logger.warning("%s: extracted %d chars, below minimum", document_id, len(text))
            return IngestResult(success=False, error=TOO_SHORT)

        snippet = text[: self._config.snippet_chars].strip()
        chunks = self._chunker.chunk(document_id, snippet)

        doc = SourceDocument(
            id=document_id,
            book=book,
            chapter=chapter,
            url=url,
            title=chapter_title(book, chapter),
            fetched_at=_now(),
            content_hash=digest,
        )

        try:
            self._repo.mark_document_pending(doc)
            vectors = self._embedder([c.text for c in chunks])
            if len(vectors) != len(chunks):
                raise EmbeddingError(
                    f"Embedder returned {len(vectors)} vectors for {len(chunks)} chunks"
                )
            entries = [
                (
                    chunk,
                    vector,
                    {
                        "type": "precept",
                        "chunk_id": chunk.id,
                        "book": book,
                        "chapter": chapter,
                        "url": url,
                    },
                )
                for chunk, vector in zip(chunks, vectors)
            ]
            self._repo.replace_chunks(doc, entries, self._index)
        except (EmbeddingError, sqlite3.Error) as exc:
            logger.error("Indexing %s failed: %s", document_id, exc)
            self._repo.mark_document_failed(document_id, self._index)
            return IngestResult(success=False, error=str(exc))

        logger.info("Indexed %s: %d chunks", document_id, len(chunks))
        return IngestResult(success=True, chunks=len(chunks))

    # ------------------------------------------------------------------
    # Sequential runs
    # ------------------------------------------------------------------

    def index_book(self, book: str) -> IngestReport:
        """Index chapters 1..N of *book*, stopping at the first real failure.

        Raises:
            UnknownBookError: If *book* is not in the catalogue.
        """
        report = IngestReport()
        for chapter in range(1, chapter_count(book) + 1):
            if not self._run(report, book, chapter):
                break
        return report

    def index_batch(self, limit: int = 5) -> IngestReport:
        """Index the first *limit* pending documents, stopping at the first real failure."""
        report = IngestReport()
        for doc in self._repo.list_documents(status=DOC_PENDING, limit=limit):
            if not self._run(report, doc.book, doc.chapter):
                break
        return report

    def _run(self, report: IngestReport, book: str, chapter: int) -> bool:
        result = self.index_chapter(book, chapter)
        report.results.append(ChapterResult(doc_id(book, chapter), book, chapter, result))
        return result.success

    # ------------------------------------------------------------------
    # Catalogue maintenance
    # ------------------------------------------------------------------

    def seed(self) -> tuple[int, int]:
        """Insert a ``pending`` row for every New Testament chapter.

        Returns:
            ``(inserted, total)``; re-seeding inserts nothing.
        """
        docs = [
            SourceDocument(
                id=doc_id(book, chapter),
                book=book,
                chapter=chapter,
                url=chapter_url(self._config.base_url, book, chapter),
                title=chapter_title(book, chapter),
            )
            for book, chapters in NT_BOOKS
            for chapter in range(1, chapters + 1)
        ]
        inserted = self._repo.seed_documents(docs)
        logger.info("Seeded %d of %d documents", inserted, len(docs))
        return inserted, len(docs)

    def status(self) -> dict[str, int]:
        return self._repo.document_status_counts()

    def reset(self) -> None:
        """Delete every document, chunk and vector entry."""
        self._repo.delete_all_documents(self._index)
        logger.warning("Ingestion data reset")
