"""Tests for per-model sqlite-vec tables and the VectorIndex."""

from __future__ import annotations

import pytest

from lectio.db.vectors import VectorIndex, ensure_vec_table, model_to_slug, vec_table_name

from conftest import fake_vector


# ------------------------------------------------------------------
# model_to_slug / ensure_vec_table
# ------------------------------------------------------------------


@pytest.mark.parametrize("model,expected", [
    ("openai/text-embedding-3-small", "openai_text_embedding_3_small"),
    ("cohere/embed-english-v3.0", "cohere_embed_english_v3_0"),
    ("cloudflare/@cf/baai/bge-base-en-v1.5", "cloudflare__cf_baai_bge_base_en_v1_5"),
])
def test_model_to_slug(model, expected):
    assert model_to_slug(model) == expected


def test_vec_table_name():
    assert vec_table_name("openai_text_embedding_3_small") == "vec_chunks_openai_text_embedding_3_small"


def test_ensure_vec_table_creates_table(tmp_db):
    table = ensure_vec_table(tmp_db, "openai_text_embedding_3_small", dimensions=1536)
    row = tmp_db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    assert row is not None


def test_ensure_vec_table_idempotent(tmp_db):
    assert ensure_vec_table(tmp_db, "m", 4) == ensure_vec_table(tmp_db, "m", 4)


def test_ensure_vec_table_invalid_slug(tmp_db):
    with pytest.raises(ValueError, match="model_slug"):
        ensure_vec_table(tmp_db, "invalid/slug!", dimensions=128)


def test_ensure_vec_table_invalid_dimensions(tmp_db):
    with pytest.raises(ValueError, match="dimensions"):
        ensure_vec_table(tmp_db, "valid_slug", dimensions=0)


# ------------------------------------------------------------------
# VectorIndex
# ------------------------------------------------------------------


def test_for_model_uses_slugged_table(tmp_db):
    index = VectorIndex.for_model(tmp_db, "test/embed-4", 4)
    assert index.table == "vec_chunks_test_embed_4"


def test_query_empty_index(index):
    assert index.query(fake_vector("anything"), top_k=5) == []


def test_upsert_then_query_returns_best_first(index):
    index.upsert("a", fake_vector("alpha"), {"type": "precept", "chunk_id": "a"})
    index.upsert("b", fake_vector("beta"), {"type": "precept", "chunk_id": "b"})

    matches = index.query(fake_vector("alpha"), top_k=2)

    assert [m.id for m in matches][0] == "a"
    assert matches[0].metadata == {"type": "precept", "chunk_id": "a"}
    assert matches[0].score == pytest.approx(1.0, abs=1e-5)
    assert matches[0].score >= matches[1].score


def test_query_respects_top_k(index):
    for i in range(5):
        index.upsert(f"v{i}", fake_vector(f"text {i}"), {})
    assert len(index.query(fake_vector("text 0"), top_k=3)) == 3


def test_upsert_same_id_replaces(index):
    index.upsert("a", fake_vector("alpha"), {"v": 1})
    index.upsert("a", fake_vector("gamma"), {"v": 2})

    assert index.count() == 1
    match = index.query(fake_vector("gamma"), top_k=1)[0]
    assert match.id == "a"
    assert match.metadata == {"v": 2}


def test_delete_removes_vectors(index):
    index.upsert("a", fake_vector("alpha"), {})
    index.upsert("b", fake_vector("beta"), {})

    assert index.delete(["a", "missing"]) == 1
    assert index.ids() == {"b"}
    assert [m.id for m in index.query(fake_vector("alpha"), top_k=5)] == ["b"]


def test_delete_empty_list(index):
    assert index.delete([]) == 0


def test_delete_all(index):
    index.upsert("a", fake_vector("alpha"), {})
    index.delete_all()
    assert index.count() == 0
    assert index.query(fake_vector("alpha"), top_k=5) == []
