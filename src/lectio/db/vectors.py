"""Vector Index on sqlite-vec: per-model vec0 tables plus an id/metadata map.

The vec0 table only knows integer rowids, so ``vector_entries`` maps the
string ids shared with chunks to those rowids and carries the metadata used to
re-join a similarity hit to relational data.

VectorIndex methods never commit; callers own the transaction.
"""

from __future__ import annotations

import json
import re
import sqlite3

from lectio.db.models import VectorMatch, dump_metadata


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
        "cloudflare/@cf/baai/bge-base-en-v1.5" -> "cloudflare__cf_baai_bge_base_en_v1_5"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create vec_chunks_{model_slug} virtual table if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name (vec_chunks_{model_slug}).
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}'; use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0(embedding float[{dimensions}])"
        )
        conn.commit()

    return table


def _distance_to_score(distance: float) -> float:
    # vec0 reports L2 distance; for unit-length embeddings 1 - d²/2 is the cosine similarity.
    return 1.0 - (distance * distance) / 2.0


class VectorIndex:
    """Upsert / query / delete embeddings keyed by string id.

    Args:
        conn:  Open connection with sqlite-vec loaded and schema initialised.
        table: Name returned by ensure_vec_table().
    """

    def __init__(self, conn: sqlite3.Connection, table: str) -> None:
        self._conn = conn
        self.table = table

    @classmethod
    def for_model(cls, conn: sqlite3.Connection, model: str, dimensions: int) -> "VectorIndex":
        """Open (creating if needed) the index for an embedding model."""
        return cls(conn, ensure_vec_table(conn, model_to_slug(model), dimensions))

    def upsert(self, id: str, vector: list[float], metadata: dict) -> None:
        """Insert or replace the vector and metadata stored under *id*."""
        row = self._conn.execute(
            "SELECT vec_rowid FROM vector_entries WHERE id = ?", (id,)
        ).fetchone()
        if row is None:
            cur = self._conn.execute(
                "INSERT INTO vector_entries (id, metadata) VALUES (?, ?)",
                (id, dump_metadata(metadata)),
            )
            rowid = cur.lastrowid
        else:
            rowid = row["vec_rowid"]
            self._conn.execute(
                "UPDATE vector_entries SET metadata = ? WHERE vec_rowid = ?",
                (dump_metadata(metadata), rowid),
            )
            self._conn.execute(f"DELETE FROM {self.table} WHERE rowid = ?", (rowid,))
        self._conn.execute(
            f"INSERT INTO {self.table}(rowid, embedding) VALUES (?, ?)",
            (rowid, json.dumps(vector)),
        )

    def query(self, vector: list[float], top_k: int = 5) -> list[VectorMatch]:
        """Nearest-neighbour search. Returns matches best-first with metadata."""
        vec_rows = self._conn.execute(
            f"SELECT rowid, distance FROM {self.table} WHERE embedding MATCH ? ORDER BY distance LIMIT ?",
            (json.dumps(vector), top_k),
        ).fetchall()

        matches: list[VectorMatch] = []
        for vec_row in vec_rows:
            entry = self._conn.execute(
                "SELECT id, metadata FROM vector_entries WHERE vec_rowid = ?",
                (vec_row["rowid"],),
            ).fetchone()
            if entry is None:
                continue
            matches.append(
                VectorMatch(
                    id=entry["id"],
                    score=_distance_to_score(vec_row["distance"]),
                    metadata=json.loads(entry["metadata"]),
                )
            )
        return matches

    def delete(self, ids: list[str]) -> int:
        """Delete the vectors stored under *ids*. Returns the number removed."""
        if not ids:
            return 0
        placeholders = ",".join("?" * len(ids))
        rowids = [
            r[0]
            for r in self._conn.execute(
                f"SELECT vec_rowid FROM vector_entries WHERE id IN ({placeholders})", ids
            ).fetchall()
        ]
        if not rowids:
            return 0
        rowid_marks = ",".join("?" * len(rowids))
        self._conn.execute(f"DELETE FROM {self.table} WHERE rowid IN ({rowid_marks})", rowids)
        self._conn.execute(f"DELETE FROM vector_entries WHERE vec_rowid IN ({rowid_marks})", rowids)
        return len(rowids)

    def delete_all(self) -> None:
        self._conn.execute(f"DELETE FROM {self.table}")
        self._conn.execute("DELETE FROM vector_entries")

    def count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM vector_entries").fetchone()[0]

    def ids(self) -> set[str]:
        return {r[0] for r in self._conn.execute("SELECT id FROM vector_entries").fetchall()}
