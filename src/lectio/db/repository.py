"""Repository pattern for all Lectio database operations.

Single interface for: commentary documents, chunks (with their vector entries),
conversations, messages, sources, and search logs.
Multi-statement writes run inside ``with self._conn:`` so they commit or roll
back as one unit; single-statement writes commit immediately.
"""

from __future__ import annotations

import sqlite3
import uuid

from lectio.db.models import (
    DOC_FAILED,
    DOC_INDEXED,
    DOC_PENDING,
    ROLE_ASSISTANT,
    SOURCE_TYPES,
    Chunk,
    ChunkHit,
    Conversation,
    Message,
    PassageContext,
    Source,
    SourceDocument,
)
from lectio.db.vectors import VectorIndex

_DOC_COLUMNS = (
    "id, book, chapter, verse_start, verse_end, url, title, fetched_at, content_hash, status"
)
_CONV_COLUMNS = (
    "id, user_id, title, context_translation, context_book, context_book_id, "
    "context_chapter, context_verse_start, context_verse_end, created_at, updated_at"
)


def _new_id() -> str:
    return str(uuid.uuid4())


class Repository:
    """Data access layer for all Lectio database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see lectio.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Commentary documents
    # ------------------------------------------------------------------

    def seed_documents(self, docs: list[SourceDocument]) -> int:
        """Insert each of *docs* as ``pending`` unless a row with its id exists.

        Returns:
            Number of new rows inserted.
        """
        inserted = 0
        with self._conn:
            for doc in docs:
                cur = self._conn.execute(
                    """
                    INSERT OR IGNORE INTO documents (id, book, chapter, verse_start, verse_end, url, title, status)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        doc.id,
                        doc.book,
                        doc.chapter,
                        doc.verse_start,
                        doc.verse_end,
                        doc.url,
                        doc.title,
                        DOC_PENDING,
                    ),
                )
                inserted += cur.rowcount
        return inserted

    def get_document(self, doc_id: str) -> SourceDocument | None:
        row = self._conn.execute(
            f"SELECT {_DOC_COLUMNS} FROM documents WHERE id = ?", (doc_id,)
        ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self, status: str | None = None, limit: int | None = None) -> list[SourceDocument]:
        """Return documents in (book, chapter) insertion order, optionally filtered by status."""
        sql = f"SELECT {_DOC_COLUMNS} FROM documents"
        params: list = []
        if status is not None:
            sql += " WHERE status = ?"
            params.append(status)
        sql += " ORDER BY rowid"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [_row_to_document(r) for r in self._conn.execute(sql, params).fetchall()]

    def document_status_counts(self) -> dict[str, int]:
        """Return ``{total, indexed, pending, failed}`` over all documents."""
        row = self._conn.execute(
            """
            SELECT
                COUNT(*) AS total,
                SUM(CASE WHEN status = 'indexed' THEN 1 ELSE 0 END) AS indexed,
                SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END) AS pending,
                SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) AS failed
            FROM documents
            """
        ).fetchone()
        return {key: int(row[key] or 0) for key in ("total", "indexed", "pending", "failed")}

    def mark_document_pending(self, doc: SourceDocument) -> None:
        """Upsert *doc* with ``status='pending'`` ahead of an index run."""
        with self._conn:
            self._upsert_document(doc, DOC_PENDING)

    def replace_chunks(
        self,
        doc: SourceDocument,
        entries: list[tuple[Chunk, list[float], dict]],
        index: VectorIndex,
    ) -> None:
        """Swap the chunk set of *doc* and mark it indexed, atomically.

        Old chunks and their vector entries are deleted, the new chunks and
        vectors inserted, and the document row upserted with its new
        ``content_hash`` / ``fetched_at`` and ``status='indexed'``, all in one
        transaction. Readers see either the old set or the new one.

        Args:
            doc: Document row to write (``content_hash`` must be set).
            entries: ``(chunk, embedding, vector metadata)`` per chunk.
            index: Vector index on the same connection.
        """
        with self._conn:
            self._upsert_document(doc, DOC_INDEXED)
            self._purge_chunks(doc.id, index)
            for chunk, vector, metadata in entries:
                self._conn.execute(
                    "INSERT INTO chunks (id, doc_id, chunk_index, text, token_count) VALUES (?, ?, ?, ?, ?)",
                    (chunk.id, chunk.doc_id, chunk.chunk_index, chunk.text, chunk.token_count),
                )
                index.upsert(chunk.id, vector, metadata)

    def mark_document_failed(self, doc_id: str, index: VectorIndex) -> None:
        """Set ``status='failed'`` and drop the document's chunks and vectors."""
        with self._conn:
            self._purge_chunks(doc_id, index)
            self._conn.execute(
                "UPDATE documents SET status = ? WHERE id = ?", (DOC_FAILED, doc_id)
            )

    def delete_all_documents(self, index: VectorIndex) -> None:
        """Remove every document, chunk, and vector entry."""
        with self._conn:
            index.delete_all()
            self._conn.execute("DELETE FROM chunks")
            self._conn.execute("DELETE FROM documents")

    def _upsert_document(self, doc: SourceDocument, status: str) -> None:
        self._conn.execute(
            """
            INSERT INTO documents (id, book, chapter, verse_start, verse_end, url, title,
                                   fetched_at, content_hash, status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                url = excluded.url,
                title = excluded.title,
                fetched_at = excluded.fetched_at,
                content_hash = excluded.content_hash,
                status = excluded.status
            """,
            (
                doc.id,
                doc.book,
                doc.chapter,
                doc.verse_start,
                doc.verse_end,
                doc.url,
                doc.title,
                doc.fetched_at,
                doc.content_hash,
                status,
            ),
        )

    def _purge_chunks(self, doc_id: str, index: VectorIndex) -> None:
        chunk_ids = [
            r[0]
            for r in self._conn.execute(
                "SELECT id FROM chunks WHERE doc_id = ?", (doc_id,)
            ).fetchall()
        ]
        index.delete(chunk_ids)
        self._conn.execute("DELETE FROM chunks WHERE doc_id = ?", (doc_id,))

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def list_chunks(self, doc_id: str) -> list[Chunk]:
        rows = self._conn.execute(
            "SELECT id, doc_id, chunk_index, text, token_count FROM chunks WHERE doc_id = ? ORDER BY chunk_index",
            (doc_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks(self, doc_id: str | None = None) -> int:
        if doc_id is None:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE doc_id = ?", (doc_id,)
        ).fetchone()[0]

    def get_chunk_hit(self, chunk_id: str) -> ChunkHit | None:
        """Join a chunk to its indexed parent document, or None if either is missing."""
        row = self._conn.execute(
            """
            SELECT c.id, c.text, d.url, d.book, d.chapter, d.verse_start, d.title
            FROM chunks c
            JOIN documents d ON c.doc_id = d.id
            WHERE c.id = ? AND d.status = 'indexed'
            """,
            (chunk_id,),
        ).fetchone()
        if row is None:
            return None
        return ChunkHit(
            chunk_id=row["id"],
            text=row["text"],
            url=row["url"],
            book=row["book"],
            chapter=row["chapter"],
            title=row["title"],
            verse_start=row["verse_start"],
        )

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create_conversation(self, user_id: str, context: PassageContext | None = None) -> Conversation:
        """Insert a new conversation with no title. Returns the stored row."""
        conv_id = _new_id()
        ctx = context or PassageContext()
        self._conn.execute(
            """
            INSERT INTO conversations (id, user_id, context_translation, context_book, context_book_id,
                                       context_chapter, context_verse_start, context_verse_end)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                conv_id,
                user_id,
                ctx.translation,
                ctx.book,
                ctx.book_id,
                ctx.chapter,
                ctx.verse_start,
                ctx.verse_end,
            ),
        )
        self._conn.commit()
        return self.get_conversation(conv_id)  # type: ignore[return-value]

    def get_conversation(self, conv_id: str) -> Conversation | None:
        row = self._conn.execute(
            f"SELECT {_CONV_COLUMNS} FROM conversations WHERE id = ?", (conv_id,)
        ).fetchone()
        return _row_to_conversation(row) if row else None

    def list_conversations(self, user_id: str, limit: int = 20, offset: int = 0) -> list[Conversation]:
        """Return *user_id*'s conversations, most recently updated first."""
        rows = self._conn.execute(
            f"""
            SELECT {_CONV_COLUMNS} FROM conversations
            WHERE user_id = ?
            ORDER BY updated_at DESC, rowid DESC
            LIMIT ? OFFSET ?
            """,
            (user_id, limit, offset),
        ).fetchall()
        return [_row_to_conversation(r) for r in rows]

    def delete_conversation(self, conv_id: str) -> bool:
        """Delete a conversation; messages and sources cascade."""
        cur = self._conn.execute("DELETE FROM conversations WHERE id = ?", (conv_id,))
        self._conn.commit()
        return cur.rowcount > 0

    def backfill_title(self, conv_id: str, title: str) -> bool:
        """Set the title only if none is stored yet. Returns True if it was set."""
        cur = self._conn.execute(
            """
            UPDATE conversations
            SET title = ?, updated_at = strftime('%Y-%m-%d %H:%M:%f', 'now')
            WHERE id = ? AND title IS NULL
            """,
            (title, conv_id),
        )
        self._conn.commit()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Messages + sources
    # ------------------------------------------------------------------

    def add_message(self, conv_id: str, role: str, content: str) -> Message:
        """Append a message to a conversation."""
        with self._conn:
            msg_id = self._insert_message(conv_id, role, content)
        return self.get_message(msg_id)  # type: ignore[return-value]

    def add_assistant_message(self, conv_id: str, content: str, sources: list[Source]) -> Message:
        """Append an assistant message and its sources in one transaction."""
        with self._conn:
            msg_id = self._insert_message(conv_id, ROLE_ASSISTANT, content)
            self._insert_sources(msg_id, sources)
        return self.get_message(msg_id, with_sources=True)  # type: ignore[return-value]

    def replace_assistant_message(
        self,
        conv_id: str,
        old_message_id: str | None,
        content: str,
        sources: list[Source],
    ) -> Message:
        """Delete *old_message_id* (sources cascade) and append a new assistant message."""
        with self._conn:
            if old_message_id is not None:
                self._conn.execute(
                    "DELETE FROM messages WHERE id = ? AND conversation_id = ?",
                    (old_message_id, conv_id),
                )
            msg_id = self._insert_message(conv_id, ROLE_ASSISTANT, content)
            self._insert_sources(msg_id, sources)
        return self.get_message(msg_id, with_sources=True)  # type: ignore[return-value]

    def get_message(self, msg_id: str, with_sources: bool = False) -> Message | None:
        row = self._conn.execute(
            "SELECT id, conversation_id, role, content, created_at FROM messages WHERE id = ?",
            (msg_id,),
        ).fetchone()
        if row is None:
            return None
        msg = _row_to_message(row)
        if with_sources:
            msg.sources = self.list_sources(msg.id)
        return msg

    def list_messages(self, conv_id: str, with_sources: bool = False) -> list[Message]:
        """Return a conversation's messages oldest first (insertion order breaks ties)."""
        rows = self._conn.execute(
            """
            SELECT id, conversation_id, role, content, created_at FROM messages
            WHERE conversation_id = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (conv_id,),
        ).fetchall()
        messages = [_row_to_message(r) for r in rows]
        if with_sources:
            for msg in messages:
                msg.sources = self.list_sources(msg.id)
        return messages

    def last_message(self, conv_id: str, role: str) -> Message | None:
        row = self._conn.execute(
            """
            SELECT id, conversation_id, role, content, created_at FROM messages
            WHERE conversation_id = ? AND role = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (conv_id, role),
        ).fetchone()
        return _row_to_message(row) if row else None

    def count_messages(self, conv_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM messages WHERE conversation_id = ?", (conv_id,)
        ).fetchone()[0]

    def list_sources(self, msg_id: str) -> list[Source]:
        rows = self._conn.execute(
            "SELECT id, message_id, type, reference, url, snippet FROM sources WHERE message_id = ? ORDER BY rowid",
            (msg_id,),
        ).fetchall()
        return [_row_to_source(r) for r in rows]

    def search_messages(self, query: str, user_id: str, limit: int = 10) -> list[sqlite3.Row]:
        """Substring scan over *user_id*'s messages, newest first.

        Returns rows with ``id, content, title, conversation_id``.
        """
        pattern = "%" + _escape_like(query) + "%"
        return self._conn.execute(
            r"""
            SELECT m.id, m.content, c.title, c.id AS conversation_id
            FROM messages m
            JOIN conversations c ON m.conversation_id = c.id
            WHERE c.user_id = ? AND m.content LIKE ? ESCAPE '\'
            ORDER BY m.created_at DESC, m.rowid DESC
            LIMIT ?
            """,
            (user_id, pattern, limit),
        ).fetchall()

    def _insert_message(self, conv_id: str, role: str, content: str) -> str:
        msg_id = _new_id()
        self._conn.execute(
            "INSERT INTO messages (id, conversation_id, role, content) VALUES (?, ?, ?, ?)",
            (msg_id, conv_id, role, content),
        )
        self._conn.execute(
            "UPDATE conversations SET updated_at = strftime('%Y-%m-%d %H:%M:%f', 'now') WHERE id = ?",
            (conv_id,),
        )
        return msg_id

    def _insert_sources(self, msg_id: str, sources: list[Source]) -> None:
        for source in sources:
            if source.type not in SOURCE_TYPES:
                raise ValueError(f"Unknown source type '{source.type}'")
            self._conn.execute(
                "INSERT INTO sources (id, message_id, type, reference, url, snippet) VALUES (?, ?, ?, ?, ?, ?)",
                (_new_id(), msg_id, source.type, source.reference, source.url, source.snippet),
            )

    # ------------------------------------------------------------------
    # Search logs
    # ------------------------------------------------------------------

    def add_search_log(self, user_id: str, query: str, mode: str, results_count: int) -> None:
        self._conn.execute(
            "INSERT INTO search_logs (id, user_id, query, mode, results_count) VALUES (?, ?, ?, ?, ?)",
            (_new_id(), user_id, query, mode, results_count),
        )
        self._conn.commit()

    def count_search_logs(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM search_logs").fetchone()[0]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_document(row: sqlite3.Row) -> SourceDocument:
    return SourceDocument(
        id=row["id"],
        book=row["book"],
        chapter=row["chapter"],
        verse_start=row["verse_start"],
        verse_end=row["verse_end"],
        url=row["url"],
        title=row["title"],
        fetched_at=row["fetched_at"],
        content_hash=row["content_hash"],
        status=row["status"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        doc_id=row["doc_id"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        token_count=row["token_count"],
    )


def _row_to_conversation(row: sqlite3.Row) -> Conversation:
    context = PassageContext(
        translation=row["context_translation"],
        book=row["context_book"],
        book_id=row["context_book_id"],
        chapter=row["context_chapter"],
        verse_start=row["context_verse_start"],
        verse_end=row["context_verse_end"],
    )
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        context=None if context.is_empty() else context,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        content=row["content"],
        created_at=row["created_at"],
    )


def _row_to_source(row: sqlite3.Row) -> Source:
    return Source(
        id=row["id"],
        message_id=row["message_id"],
        type=row["type"],
        reference=row["reference"],
        url=row["url"],
        snippet=row["snippet"],
    )
