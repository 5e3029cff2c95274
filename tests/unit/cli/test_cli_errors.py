"""Tests for lectio rich error messages."""

from __future__ import annotations

import pytest

from lectio.cli.errors import (
    err_config,
    err_no_api_key,
    err_no_db,
    err_reset_not_development,
    err_unknown_book,
)


def _has_action(msg: str) -> bool:
    """Every error must contain an actionable instruction."""
    lower = msg.lower()
    return any(kw in lower for kw in ["run:", "set:", "export ", "fix ", "known books"])


@pytest.mark.parametrize("msg", [
    err_no_api_key("openai"),
    err_config("bad value"),
    err_unknown_book("Unknown book: Genesis"),
    err_no_db(".lectio.db"),
    err_reset_not_development("production"),
])
def test_every_error_is_actionable(msg: str) -> None:
    assert msg.startswith("[red]Error:[/]")
    assert _has_action(msg)


def test_err_no_api_key_names_env_var() -> None:
    assert "DEEPSEEK_API_KEY" in err_no_api_key("deepseek")


def test_err_unknown_book_lists_catalogue() -> None:
    msg = err_unknown_book("Unknown book: Genesis")
    assert "Genesis" in msg
    assert "1 Corinthians" in msg
    assert "Revelation" in msg


def test_err_reset_mentions_environment() -> None:
    msg = err_reset_not_development("production")
    assert "production" in msg
    assert "LECTIO_ENVIRONMENT=development" in msg
