"""Unified search across commentary (vector) and past chats (keyword).

Each corpus respects ``limit`` on its own and results are concatenated,
commentary first, without re-ranking. Scripture text lives behind an external
service, so the ``scripture`` corpus contributes nothing here.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from lectio.db.repository import Repository
from lectio.db.vectors import VectorIndex
from lectio.rag.llm_client import Embedder, EmbeddingError
from lectio.rag.retriever import search_commentary

logger = logging.getLogger(__name__)

SEARCH_MODES = ("all", "scripture", "precept", "chats")
KEYWORD_SCORE = 0.5
_SNIPPET_CHARS = 200


@dataclass
class SearchResult:
    type: str
    snippet: str
    score: float
    reference: str | None = None
    title: str | None = None
    url: str | None = None
    conversation_id: str | None = None

    def to_dict(self) -> dict:
        data = {
            "type": self.type,
            "reference": self.reference,
            "title": self.title,
            "snippet": self.snippet,
            "url": self.url,
            "conversation_id": self.conversation_id,
            "score": self.score,
        }
        return {k: v for k, v in data.items() if v is not None}


def unified_search(
    query: str,
    mode: str,
    limit: int,
    user_id: str,
    repo: Repository,
    index: VectorIndex,
    embedder: Embedder,
) -> list[SearchResult]:
    """Search the requested corpora and log the call.

    Raises:
        ValueError: Empty query, unknown mode, or non-positive limit. Nothing
            is logged for a rejected request.
    """
    if not query or not query.strip():
        raise ValueError("Query is required")
    if mode not in SEARCH_MODES:
        raise ValueError(f"Unknown search mode '{mode}'. Expected one of: {', '.join(SEARCH_MODES)}")
    if limit < 1:
        raise ValueError("limit must be >= 1")

    results: list[SearchResult] = []
    try:
        if mode in ("all", "precept"):
            results.extend(_search_precept(query, limit, repo, index, embedder))
        if mode in ("all", "chats"):
            results.extend(_search_chats(query, limit, user_id, repo))
    finally:
        repo.add_search_log(user_id, query, mode, len(results))
    return results


def _search_precept(
    query: str,
    limit: int,
    repo: Repository,
    index: VectorIndex,
    embedder: Embedder,
) -> list[SearchResult]:
    try:
        hits = search_commentary(query, repo, index, embedder, top_k=limit)
    except (EmbeddingError, sqlite3.Error) as exc:
        logger.warning("Commentary search unavailable: %s", exc)
        return []
    return [
        SearchResult(
            type="precept",
            reference=hit.reference,
            title=hit.title,
            snippet=hit.text[:_SNIPPET_CHARS],
            url=hit.url,
            score=match.score,
        )
        for hit, match in hits
    ]


def _search_chats(query: str, limit: int, user_id: str, repo: Repository) -> list[SearchResult]:
    return [
        SearchResult(
            type="chat",
            title=row["title"],
            snippet=row["content"][:_SNIPPET_CHARS],
            conversation_id=row["conversation_id"],
            score=KEYWORD_SCORE,
        )
        for row in repo.search_messages(query, user_id, limit=limit)
    ]
