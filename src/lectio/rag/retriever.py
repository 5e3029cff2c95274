"""Retrieval orchestrator: embed the query, search the vector index, join to chunks.

Only commentary hits (metadata ``type == "precept"``) are joined; each becomes a
PreceptPassage carrying the full chunk text, its page URL and a
``Book C[:V]`` reference. When the caller supplies a passage context a
"Current passage" marker is always added, so the context is never empty while
the reader is looking at a passage.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

from lectio.db.models import ChunkHit, PassageContext, VectorMatch
from lectio.db.repository import Repository
from lectio.db.vectors import VectorIndex
from lectio.rag.llm_client import Embedder, EmbeddingError
from lectio.rag.outcome import Outcome

logger = logging.getLogger(__name__)

PRECEPT = "precept"


@dataclass
class PreceptPassage:
    """A commentary chunk selected for the prompt.

    Attributes:
        text: Full chunk text.
        url: Commentary page the chunk came from.
        reference: ``"Book C:V"`` when the document has a verse start, else ``"Book C"``.
    """

    text: str
    url: str
    reference: str


@dataclass
class RetrievalContext:
    scripture: list[str] = field(default_factory=list)
    precept: list[PreceptPassage] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.scripture and not self.precept


def passage_marker(passage: PassageContext) -> str:
    """Render the plain-text "Current passage" line for *passage*."""
    parts = ["Current passage:"]
    if passage.translation:
        parts.append(passage.translation)
    if passage.book:
        parts.append(passage.book)
    elif passage.book_id is not None:
        parts.append(f"Book {passage.book_id}")
    if passage.chapter is not None:
        parts.append(f"Chapter {passage.chapter}")
    if passage.verse_start is not None:
        if passage.verse_end is not None and passage.verse_end != passage.verse_start:
            parts.append(f"Verses {passage.verse_start}-{passage.verse_end}")
        else:
            parts.append(f"Verse {passage.verse_start}")
    return " ".join(parts)


def search_commentary(
    query: str,
    repo: Repository,
    index: VectorIndex,
    embedder: Embedder,
    top_k: int,
) -> list[tuple[ChunkHit, VectorMatch]]:
    """Embed *query* and return commentary hits joined to their chunk rows, best-first.

    Hits whose chunk (or indexed parent document) no longer exists are dropped.

    Raises:
        EmbeddingError: If the query cannot be embedded.
        sqlite3.Error: If the vector query fails.
    """
    vector = embedder([query])[0]
    joined: list[tuple[ChunkHit, VectorMatch]] = []
    for match in index.query(vector, top_k=top_k):
        if match.metadata.get("type") != PRECEPT:
            continue
        hit = repo.get_chunk_hit(match.metadata.get("chunk_id") or match.id)
        if hit is not None:
            joined.append((hit, match))
    return joined


def retrieve(
    query: str,
    repo: Repository,
    index: VectorIndex,
    embedder: Embedder,
    passage: PassageContext | None = None,
    top_k: int = 5,
) -> Outcome[RetrievalContext]:
    """Build the retrieval context for one chat turn.

    Returns:
        ``Outcome.ok`` with commentary passages (and the passage marker), or
        ``Outcome.degraded`` holding only the passage marker when the query
        could not be embedded or the index could not be searched.
    """
    context = RetrievalContext()
    outcome: Outcome[RetrievalContext] = Outcome.ok(context)

    try:
        for hit, _match in search_commentary(query, repo, index, embedder, top_k):
            context.precept.append(
                PreceptPassage(text=hit.text, url=hit.url, reference=hit.reference)
            )
    except (EmbeddingError, sqlite3.Error) as exc:
        logger.warning("Retrieval degraded: %s", exc)
        context.precept.clear()
        outcome = Outcome.degraded(context, str(exc))

    if passage is not None and not passage.is_empty():
        context.scripture.append(passage_marker(passage))

    return outcome
