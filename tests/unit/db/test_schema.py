"""Tests for database schema initialization."""

from __future__ import annotations

import sqlite3

import pytest

from lectio.db.schema import CURRENT_VERSION


def _table_columns(conn, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row["name"] for row in rows}


def test_documents_columns(tmp_db):
    cols = _table_columns(tmp_db, "documents")
    assert cols == {
        "id", "book", "chapter", "verse_start", "verse_end", "url", "title",
        "fetched_at", "content_hash", "status",
    }


def test_chunks_columns(tmp_db):
    cols = _table_columns(tmp_db, "chunks")
    assert cols == {"id", "doc_id", "chunk_index", "text", "token_count"}


def test_conversations_columns(tmp_db):
    cols = _table_columns(tmp_db, "conversations")
    assert {"id", "user_id", "title", "context_book", "context_chapter", "created_at", "updated_at"} <= cols


def test_schema_version_recorded(tmp_db):
    version = tmp_db.execute("SELECT version FROM schema_version").fetchone()[0]
    assert version == CURRENT_VERSION


def test_document_status_checked(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO documents (id, book, chapter, url, status) VALUES ('d', 'John', 1, 'u', 'weird')"
        )


def test_message_role_checked(tmp_db):
    tmp_db.execute("INSERT INTO conversations (id, user_id) VALUES ('c1', 'u1')")
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO messages (id, conversation_id, role, content) VALUES ('m1', 'c1', 'robot', 'x')"
        )


def test_messages_cascade_with_conversation(tmp_db):
    tmp_db.execute("INSERT INTO conversations (id, user_id) VALUES ('c1', 'u1')")
    tmp_db.execute(
        "INSERT INTO messages (id, conversation_id, role, content) VALUES ('m1', 'c1', 'user', 'hi')"
    )
    tmp_db.execute(
        "INSERT INTO sources (id, message_id, type, reference) VALUES ('s1', 'm1', 'scripture', 'John 3:16')"
    )
    tmp_db.execute("DELETE FROM conversations WHERE id = 'c1'")
    assert tmp_db.execute("SELECT COUNT(*) FROM messages").fetchone()[0] == 0
    assert tmp_db.execute("SELECT COUNT(*) FROM sources").fetchone()[0] == 0
