"""Sentence-packing chunker for commentary text."""

from __future__ import annotations

import math
import re

from lectio.db.models import Chunk
from lectio.ingest.books import chunk_id

_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+")


class SentenceChunker:
    """Pack whole sentences into chunks of at most *max_tokens* estimated tokens.

    Sentences are split after ``.``, ``!`` or ``?`` followed by whitespace and
    joined with single spaces. A sentence is never split: one longer than the
    budget becomes a chunk on its own. Chunks are contiguous and
    non-overlapping, so joining them with spaces reproduces the
    (whitespace-normalised) input.

    Token counting uses a 4-chars-per-token approximation.
    """

    def __init__(self, max_tokens: int = 500) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        self.max_tokens = max_tokens

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: ceil(len / 4)."""
        return math.ceil(len(text) / 4)

    def split(self, text: str) -> list[str]:
        """Return the chunk texts for *text*, in order."""
        chunks: list[str] = []
        current = ""
        for sentence in _SENTENCE_END_RE.split(text.strip()):
            if not sentence:
                continue
            candidate = f"{current} {sentence}" if current else sentence
            if current and self.count_tokens(candidate) > self.max_tokens:
                chunks.append(current)
                current = sentence
            else:
                current = candidate
        if current:
            chunks.append(current)
        return chunks

    def chunk(self, document_id: str, text: str) -> list[Chunk]:
        """Split *text* into Chunk objects for *document_id*.

        Returns:
            Ordered list of Chunk objects with sequential ``chunk_index`` and
            ids ``<document_id>-chunk-<i>``.
        """
        return [
            Chunk(
                id=chunk_id(document_id, i),
                doc_id=document_id,
                chunk_index=i,
                text=piece,
                token_count=self.count_tokens(piece),
            )
            for i, piece in enumerate(self.split(text))
        ]
