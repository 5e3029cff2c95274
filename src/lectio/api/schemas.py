"""Request bodies for the HTTP surface."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from lectio.db.models import PassageContext


class PassageContextIn(BaseModel):
    translation: Optional[str] = None
    book: Optional[str] = None
    book_id: Optional[int] = None
    chapter: Optional[int] = None
    verse_start: Optional[int] = None
    verse_end: Optional[int] = None

    def to_model(self) -> PassageContext:
        return PassageContext(
            translation=self.translation,
            book=self.book,
            book_id=self.book_id,
            chapter=self.chapter,
            verse_start=self.verse_start,
            verse_end=self.verse_end,
        )


class ChatRequest(BaseModel):
    message: str
    conversation_id: Optional[str] = None
    context: Optional[PassageContextIn] = None
    mode: Optional[str] = None


class RegenerateRequest(BaseModel):
    conversation_id: str
    mode: Optional[str] = None


class SearchRequest(BaseModel):
    query: str
    mode: str = "all"
    limit: int = Field(default=10, ge=1, le=50)


class ChapterRequest(BaseModel):
    book: str
    chapter: int


class BookRequest(BaseModel):
    book: str


class BatchRequest(BaseModel):
    limit: int = Field(default=5, ge=1, le=100)
