"""Tests for the retrieval orchestrator."""

from __future__ import annotations

import sqlite3

from lectio.db.models import Chunk, PassageContext, SourceDocument
from lectio.rag.retriever import passage_marker, retrieve, search_commentary

from conftest import FakeEmbedder, fake_vector

JOHN3 = PassageContext(translation="ESV", book="John", book_id=43, chapter=3)


def _index_doc(repo, index, doc_id="precept-john-3", texts=("Nicodemus came by night.",), verse_start=None):
    doc = SourceDocument(
        id=doc_id,
        book="John",
        chapter=3,
        url=f"https://example.org/{doc_id}",
        verse_start=verse_start,
        content_hash="h",
    )
    entries = [
        (
            Chunk(id=f"{doc_id}-chunk-{i}", doc_id=doc_id, chunk_index=i, text=t),
            fake_vector(t),
            {"type": "precept", "chunk_id": f"{doc_id}-chunk-{i}"},
        )
        for i, t in enumerate(texts)
    ]
    repo.replace_chunks(doc, entries, index)


# ------------------------------------------------------------------
# passage_marker
# ------------------------------------------------------------------


def test_passage_marker_chapter():
    assert passage_marker(JOHN3) == "Current passage: ESV John Chapter 3"


def test_passage_marker_verse_range():
    ctx = PassageContext(book="Romans", chapter=8, verse_start=28, verse_end=29)
    assert passage_marker(ctx) == "Current passage: Romans Chapter 8 Verses 28-29"


def test_passage_marker_single_verse_and_book_id():
    ctx = PassageContext(book_id=43, chapter=3, verse_start=16, verse_end=16)
    assert passage_marker(ctx) == "Current passage: Book 43 Chapter 3 Verse 16"


# ------------------------------------------------------------------
# retrieve
# ------------------------------------------------------------------


def test_retrieve_joins_hits(repo, index):
    _index_doc(repo, index)

    outcome = retrieve("Nicodemus came by night.", repo, index, FakeEmbedder())

    assert not outcome.is_degraded
    [passage] = outcome.value.precept
    assert passage.text == "Nicodemus came by night."
    assert passage.url == "https://example.org/precept-john-3"
    assert passage.reference == "John 3"
    assert outcome.value.scripture == []


def test_retrieve_reference_includes_verse(repo, index):
    _index_doc(repo, index, verse_start=16)
    outcome = retrieve("anything", repo, index, FakeEmbedder())
    assert outcome.value.precept[0].reference == "John 3:16"


def test_retrieve_respects_top_k(repo, index):
    _index_doc(repo, index, texts=[f"Sentence number {i}." for i in range(6)])
    outcome = retrieve("query", repo, index, FakeEmbedder(), top_k=2)
    assert len(outcome.value.precept) == 2


def test_retrieve_empty_index_with_passage_is_not_empty(repo, index):
    outcome = retrieve("Who is Nicodemus?", repo, index, FakeEmbedder(), passage=JOHN3)

    assert not outcome.value.is_empty()
    assert outcome.value.scripture == ["Current passage: ESV John Chapter 3"]
    assert outcome.value.precept == []


def test_retrieve_empty_index_without_passage(repo, index):
    outcome = retrieve("Who is Nicodemus?", repo, index, FakeEmbedder())
    assert outcome.value.is_empty()


def test_retrieve_skips_non_precept_metadata(repo, index):
    index.upsert("other-1", fake_vector("x"), {"type": "lexicon", "chunk_id": "other-1"})
    outcome = retrieve("x", repo, index, FakeEmbedder())
    assert outcome.value.precept == []


def test_retrieve_skips_pending_documents(repo, index):
    _index_doc(repo, index)
    repo.mark_document_pending(SourceDocument(id="precept-john-3", book="John", chapter=3, url="u"))

    outcome = retrieve("Nicodemus came by night.", repo, index, FakeEmbedder())
    assert outcome.value.precept == []


def test_retrieve_degrades_on_embedding_failure(repo, index):
    _index_doc(repo, index)

    outcome = retrieve("q", repo, index, FakeEmbedder(fail=True), passage=JOHN3)

    assert outcome.is_degraded
    assert "unavailable" in outcome.reason
    assert outcome.value.precept == []
    assert outcome.value.scripture == ["Current passage: ESV John Chapter 3"]


def test_retrieve_degrades_on_index_failure(repo, index):
    class BrokenIndex:
        def query(self, vector, top_k=5):
            raise sqlite3.OperationalError("no such table")

    outcome = retrieve("q", repo, BrokenIndex(), FakeEmbedder())
    assert outcome.is_degraded


def test_search_commentary_returns_scores(repo, index):
    _index_doc(repo, index, texts=["Grace upon grace.", "Born of water."])

    results = search_commentary("Grace upon grace.", repo, index, FakeEmbedder(), top_k=5)

    assert results[0][0].text == "Grace upon grace."
    assert results[0][1].score >= results[1][1].score
