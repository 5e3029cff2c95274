"""Domain models for the Lectio database layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

DOC_PENDING = "pending"
DOC_INDEXED = "indexed"
DOC_FAILED = "failed"

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

SOURCE_TYPES = ("scripture", "precept", "lexicon", "other")


@dataclass
class SourceDocument:
    id: str
    book: str
    chapter: int
    url: str
    title: str = ""
    verse_start: int | None = None
    verse_end: int | None = None
    fetched_at: str | None = None
    content_hash: str | None = None
    status: str = DOC_PENDING


@dataclass
class Chunk:
    id: str
    doc_id: str
    chunk_index: int
    text: str
    token_count: int = 0


@dataclass
class ChunkHit:
    """A chunk joined to its parent document, as returned to retrieval."""

    chunk_id: str
    text: str
    url: str
    book: str
    chapter: int
    title: str = ""
    verse_start: int | None = None

    @property
    def reference(self) -> str:
        if self.verse_start:
            return f"{self.book} {self.chapter}:{self.verse_start}"
        return f"{self.book} {self.chapter}"


@dataclass
class VectorMatch:
    id: str
    score: float
    metadata: dict = field(default_factory=dict)


@dataclass
class PassageContext:
    """What the reader is looking at: translation, book, chapter, verses."""

    translation: str | None = None
    book: str | None = None
    book_id: int | None = None
    chapter: int | None = None
    verse_start: int | None = None
    verse_end: int | None = None

    def is_empty(self) -> bool:
        return self.book is None and self.book_id is None and self.chapter is None


@dataclass
class Conversation:
    id: str
    user_id: str
    title: str | None = None
    context: PassageContext | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict:
        ctx = self.context or PassageContext()
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "context_translation": ctx.translation,
            "context_book": ctx.book,
            "context_book_id": ctx.book_id,
            "context_chapter": ctx.chapter,
            "context_verse_start": ctx.verse_start,
            "context_verse_end": ctx.verse_end,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class Source:
    type: str
    reference: str | None = None
    url: str | None = None
    snippet: str | None = None
    id: str | None = None
    message_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "reference": self.reference,
            "url": self.url,
            "snippet": self.snippet,
        }


@dataclass
class Message:
    id: str
    conversation_id: str
    role: str
    content: str
    created_at: str | None = None
    sources: list[Source] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at,
            "sources": [s.to_dict() for s in self.sources],
        }


def dump_metadata(metadata: dict) -> str:
    return json.dumps(metadata, sort_keys=True)
