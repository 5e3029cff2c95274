"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import math
from types import SimpleNamespace

import pytest

from lectio.db.connection import Database
from lectio.db.repository import Repository
from lectio.db.schema import initialize
from lectio.db.vectors import VectorIndex
from lectio.ingest.fetcher import FetchError
from lectio.rag.llm_client import EmbeddingError

TEST_EMBEDDING_MODEL = "test/embed-4"
TEST_DIMS = 4

JOHN3_HTML = """
<html>
  <head><title>John 3 Commentary</title><style>body { color: red; }</style></head>
  <body>
    <nav>Home | Commentaries</nav>
    <script>trackVisit();</script>
    <h1>John 3 Commentary</h1>
    <p>Nicodemus came to Jesus by night. He was a ruler of the Jews and a teacher of Israel.</p>
    <p>Jesus answered that unless one is born again he cannot see the kingdom of God!
       The new birth is the work of the Spirit. Grace is the source of that new life?
       Yes, grace alone.</p>
    <footer>Copyright notice</footer>
  </body>
</html>
"""


def fake_vector(text: str) -> list[float]:
    """Deterministic unit-length 4-d vector for *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = [b / 255.0 + 0.01 for b in digest[:TEST_DIMS]]
    norm = math.sqrt(sum(x * x for x in raw))
    return [x / norm for x in raw]


class FakeEmbedder:
    """``(texts) -> vectors`` stand-in that records calls and can be told to fail."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[list[str]] = []

    def __call__(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingError("embedding provider unavailable")
        return [fake_vector(t) for t in texts]


class FakeFetcher:
    """Serves canned pages by URL; a missing URL or an Exception value raises FetchError."""

    def __init__(self, pages: dict[str, str | Exception] | None = None) -> None:
        self.pages = dict(pages or {})
        self.fetched: list[str] = []

    def fetch(self, url: str) -> str:
        self.fetched.append(url)
        page = self.pages.get(url)
        if page is None:
            raise FetchError(f"Failed to fetch '{url}': HTTP 404")
        if isinstance(page, Exception):
            raise page
        return page


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".lectio.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def index(tmp_db):
    return VectorIndex.for_model(tmp_db, TEST_EMBEDDING_MODEL, TEST_DIMS)


@pytest.fixture
def embedder():
    return FakeEmbedder()


class FakeCompletion:
    """Side effect for ``litellm.completion``: canned answer, follow-ups, or a stream.

    Follow-up requests are recognised by their system prompt. Every call's
    kwargs are kept in ``calls``.
    """

    def __init__(self, answer: str = "Jesus told Nicodemus he must be born again (John 3:3).",
                 follow_ups: str = "What is the new birth?\nWho was Nicodemus?\nWhy did he come by night?") -> None:
        self.answer = answer
        self.follow_ups = follow_ups
        self.calls: list[dict] = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        if kwargs.get("stream"):
            words = self.answer.split(" ")
            deltas = [w + " " for w in words[:-1]] + words[-1:]
            return iter(
                SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=d))])
                for d in deltas
            )
        is_follow_up = kwargs["messages"][0]["content"].startswith("Generate 3")
        content = self.follow_ups if is_follow_up else self.answer
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    @property
    def answer_calls(self) -> list[dict]:
        return [c for c in self.calls if not c["messages"][0]["content"].startswith("Generate 3")]
