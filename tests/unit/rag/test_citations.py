"""Tests for source extraction and follow-up generation."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from lectio.rag.citations import extract_sources, generate_follow_ups, parse_follow_ups
from lectio.rag.retriever import PreceptPassage, RetrievalContext


def test_extract_scripture_references_in_order():
    text = "God so loved the world (John 3:16). See also (1 Corinthians 13:4-7) and (2Tim 3:16)."
    sources = extract_sources(text, RetrievalContext())

    assert [s.reference for s in sources] == ["John 3:16", "1 Corinthians 13:4-7", "2Tim 3:16"]
    assert all(s.type == "scripture" for s in sources)
    assert sources[0].snippet == "(John 3:16)"


def test_extract_ignores_unparenthesised_references():
    assert extract_sources("As John 3:16 says", RetrievalContext()) == []


def test_extract_precept_sources_from_context():
    ctx = RetrievalContext(
        precept=[PreceptPassage(text="y" * 500, url="https://example.org/j3", reference="John 3")]
    )
    [source] = extract_sources("No citations here.", ctx)

    assert source.type == "precept"
    assert source.reference == "John 3"
    assert source.url == "https://example.org/j3"
    assert source.snippet == "y" * 200


def test_scripture_sources_precede_precept():
    ctx = RetrievalContext(precept=[PreceptPassage(text="t", url="u", reference="John 3")])
    sources = extract_sources("(Romans 8:28)", ctx)
    assert [s.type for s in sources] == ["scripture", "precept"]


def test_parse_follow_ups_strips_bullets():
    raw = "1. What is grace?\n- Who was Nicodemus?\n\n* Why by night?\n2) Extra?"
    assert parse_follow_ups(raw) == ["What is grace?", "Who was Nicodemus?", "Why by night?"]


def test_generate_follow_ups_ok():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = "Q1?\nQ2?\nQ3?"

    with patch("lectio.rag.llm_client.litellm.completion", return_value=mock_response) as mock_c:
        outcome = generate_follow_ups("openai/gpt-4o-mini", "user: hi\nassistant: hello")

    assert outcome.value == ["Q1?", "Q2?", "Q3?"]
    assert not outcome.is_degraded
    assert mock_c.call_args.kwargs["num_retries"] == 0


def test_generate_follow_ups_caps_transcript():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = ""

    with patch("lectio.rag.llm_client.litellm.completion", return_value=mock_response) as mock_c:
        generate_follow_ups("openai/gpt-4o-mini", "z" * 5000)

    user_content = mock_c.call_args.kwargs["messages"][1]["content"]
    assert user_content.count("z") == 1000


def test_generate_follow_ups_failure_degrades_to_empty():
    with patch("lectio.rag.llm_client.litellm.completion", side_effect=RuntimeError("down")):
        outcome = generate_follow_ups("openai/gpt-4o-mini", "transcript")

    assert outcome.value == []
    assert outcome.is_degraded
