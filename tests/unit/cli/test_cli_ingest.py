"""Tests for the lectio ingest commands."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from lectio.cli.main import app
from lectio.db.connection import Database
from lectio.db.repository import Repository

from conftest import JOHN3_HTML, TEST_DIMS, TEST_EMBEDDING_MODEL, FakeEmbedder, FakeFetcher

runner = CliRunner()

BASE = "https://example.org"


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    """A project dir with lectio.yaml, used as CWD, and no global config."""
    monkeypatch.setattr("lectio.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    for var in ("LECTIO_DB_PATH", "LECTIO_ENVIRONMENT", "LECTIO_EMBEDDING_MODEL"):
        monkeypatch.delenv(var, raising=False)
    (tmp_path / "lectio.yaml").write_text(
        yaml.dump({
            "embedding": {"model": TEST_EMBEDDING_MODEL, "dimensions": TEST_DIMS},
            "ingest": {"base_url": BASE, "delay_seconds": 0},
            "server": {"db_path": str(tmp_path / ".lectio.db")},
        }),
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def fake_io():
    """Replace the embedding provider and the network fetcher."""
    fetcher = FakeFetcher({f"{BASE}/john-3-commentary": JOHN3_HTML})
    with (
        patch("lectio.cli.ingest.make_embedder", return_value=FakeEmbedder()),
        patch("lectio.cli.ingest.Fetcher", return_value=fetcher),
    ):
        yield fetcher


def _open_repo(project: Path) -> tuple:
    conn = Database(project / ".lectio.db").connect()
    return Repository(conn), conn


# ------------------------------------------------------------------
# seed
# ------------------------------------------------------------------


def test_seed_inserts_all_chapters(project):
    result = runner.invoke(app, ["ingest", "seed"])

    assert result.exit_code == 0, result.output
    assert "Seeded 260 new of 260" in result.output
    repo, conn = _open_repo(project)
    assert repo.document_status_counts()["pending"] == 260
    conn.close()


def test_seed_twice_inserts_nothing(project):
    runner.invoke(app, ["ingest", "seed"])
    result = runner.invoke(app, ["ingest", "seed"])
    assert "Seeded 0 new of 260" in result.output


def test_seed_respects_db_option(project):
    other = project / "other.db"
    runner.invoke(app, ["ingest", "seed", "--db", str(other)])
    assert other.exists()
    assert not (project / ".lectio.db").exists()


# ------------------------------------------------------------------
# chapter
# ------------------------------------------------------------------


def test_chapter_indexes_page(project, fake_io):
    result = runner.invoke(app, ["ingest", "chapter", "John", "3"])

    assert result.exit_code == 0, result.output
    assert "John 3" in result.output
    repo, conn = _open_repo(project)
    assert repo.get_document("precept-john-3").status == "indexed"
    assert repo.count_chunks("precept-john-3") >= 1
    conn.close()


def test_chapter_unchanged_second_time(project, fake_io):
    runner.invoke(app, ["ingest", "chapter", "John", "3"])
    result = runner.invoke(app, ["ingest", "chapter", "John", "3"])
    assert result.exit_code == 0
    assert "unchanged" in result.output


def test_chapter_fetch_failure_exits_1(project, fake_io):
    result = runner.invoke(app, ["ingest", "chapter", "John", "4"])
    assert result.exit_code == 1
    assert "404" in result.output


def test_chapter_unknown_book_exits_1(project, fake_io):
    result = runner.invoke(app, ["ingest", "chapter", "Genesis", "1"])
    assert result.exit_code == 1
    assert "Unknown book" in result.output
    assert fake_io.fetched == []


def test_chapter_missing_api_key_exits_1(project, monkeypatch):
    monkeypatch.setenv("LECTIO_EMBEDDING_MODEL", "openai/text-embedding-3-small")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    result = runner.invoke(app, ["ingest", "chapter", "John", "3"])

    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_invalid_config_exits_1(project):
    (project / "lectio.yaml").write_text(yaml.dump({"generation": {"api_key": "sk-1"}}), encoding="utf-8")
    result = runner.invoke(app, ["ingest", "seed"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


# ------------------------------------------------------------------
# book / batch
# ------------------------------------------------------------------


def test_book_halts_on_failure(project, fake_io):
    result = runner.invoke(app, ["ingest", "book", "John"])
    assert result.exit_code == 1
    assert "precept-john-1" in result.output
    assert len(fake_io.fetched) == 1


def test_batch_nothing_pending(project, fake_io):
    result = runner.invoke(app, ["ingest", "batch"])
    assert result.exit_code == 0
    assert "No pending documents" in result.output


def test_batch_processes_pending(project, fake_io):
    runner.invoke(app, ["ingest", "seed"])
    fake_io.pages[f"{BASE}/matthew-1-commentary"] = JOHN3_HTML

    result = runner.invoke(app, ["ingest", "batch", "--limit", "1"])

    assert result.exit_code == 0, result.output
    assert "precept-matthew-1" in result.output
    repo, conn = _open_repo(project)
    assert repo.document_status_counts()["indexed"] == 1
    conn.close()


# ------------------------------------------------------------------
# reset
# ------------------------------------------------------------------


def test_reset_refused_outside_development(project):
    runner.invoke(app, ["ingest", "seed"])
    result = runner.invoke(app, ["ingest", "reset", "--yes"])

    assert result.exit_code == 1
    assert "only allowed in development" in result.output


def test_reset_in_development(project, monkeypatch):
    runner.invoke(app, ["ingest", "seed"])
    monkeypatch.setenv("LECTIO_ENVIRONMENT", "development")

    result = runner.invoke(app, ["ingest", "reset", "--yes"])

    assert result.exit_code == 0, result.output
    repo, conn = _open_repo(project)
    assert repo.document_status_counts()["total"] == 0
    conn.close()


def test_reset_declined_keeps_data(project, monkeypatch):
    runner.invoke(app, ["ingest", "seed"])
    monkeypatch.setenv("LECTIO_ENVIRONMENT", "development")

    result = runner.invoke(app, ["ingest", "reset"], input="n\n")

    assert result.exit_code == 0
    repo, conn = _open_repo(project)
    assert repo.document_status_counts()["total"] == 260
    conn.close()
