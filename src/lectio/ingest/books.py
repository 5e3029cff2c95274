"""New Testament book catalogue and commentary page naming.

Document ids, page URLs and titles are pure functions of (book, chapter), so
re-ingesting a chapter always addresses the same row.
"""

from __future__ import annotations

NT_BOOKS: list[tuple[str, int]] = [
    ("Matthew", 28),
    ("Mark", 16),
    ("Luke", 24),
    ("John", 21),
    ("Acts", 28),
    ("Romans", 16),
    ("1 Corinthians", 16),
    ("2 Corinthians", 13),
    ("Galatians", 6),
    ("Ephesians", 6),
    ("Philippians", 4),
    ("Colossians", 4),
    ("1 Thessalonians", 5),
    ("2 Thessalonians", 3),
    ("1 Timothy", 6),
    ("2 Timothy", 4),
    ("Titus", 3),
    ("Philemon", 1),
    ("Hebrews", 13),
    ("James", 5),
    ("1 Peter", 5),
    ("2 Peter", 3),
    ("1 John", 5),
    ("2 John", 1),
    ("3 John", 1),
    ("Jude", 1),
    ("Revelation", 22),
]

_CHAPTERS: dict[str, int] = dict(NT_BOOKS)


class UnknownBookError(ValueError):
    """Raised for a book name outside the catalogue or a chapter out of range."""


def chapter_count(book: str) -> int:
    """Return the number of chapters in *book*.

    Raises:
        UnknownBookError: If *book* is not a New Testament book name.
    """
    try:
        return _CHAPTERS[book]
    except KeyError:
        raise UnknownBookError(f"Unknown book: {book}") from None


def check_chapter(book: str, chapter: int) -> None:
    """Raise UnknownBookError unless *chapter* exists in *book*."""
    count = chapter_count(book)
    if not 1 <= chapter <= count:
        raise UnknownBookError(f"{book} has chapters 1-{count}, got {chapter}")


def book_slug(book: str) -> str:
    """URL slug: ``"1 Corinthians"`` -> ``"1_corinthians"``."""
    return "_".join(book.lower().split())


def doc_id(book: str, chapter: int) -> str:
    """Document id: ``("1 John", 3)`` -> ``"precept-1-john-3"``."""
    return f"precept-{'-'.join(book.lower().split())}-{chapter}"


def chapter_url(base_url: str, book: str, chapter: int) -> str:
    return f"{base_url.rstrip('/')}/{book_slug(book)}-{chapter}-commentary"


def chapter_title(book: str, chapter: int) -> str:
    return f"{book} {chapter} Commentary"


def chunk_id(document_id: str, index: int) -> str:
    return f"{document_id}-chunk-{index}"
