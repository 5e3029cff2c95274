"""Source extraction and follow-up question generation for assistant replies."""

from __future__ import annotations

import logging
import re

from lectio.db.models import Source
from lectio.rag.llm_client import GenerationError, complete
from lectio.rag.outcome import Outcome
from lectio.rag.retriever import RetrievalContext

logger = logging.getLogger(__name__)

# (John 3:16), (1 Corinthians 13:4-7), (2Tim 3:16)
_SCRIPTURE_RE = re.compile(r"\(([1-3]?\s?[A-Za-z]+\s+\d+:\d+(?:-\d+)?)\)")

_SNIPPET_CHARS = 200
_TRANSCRIPT_CHARS = 1000

_FOLLOWUP_PROMPT = (
    "Generate 3 brief follow-up questions for Bible study. "
    "Return only the questions, one per line, no numbering."
)


def extract_sources(text: str, context: RetrievalContext) -> list[Source]:
    """Derive the citations for an assistant reply.

    Scripture sources come from parenthesised references in *text*, in order of
    appearance; commentary sources come straight from *context*.
    """
    sources = [
        Source(type="scripture", reference=m.group(1), snippet=m.group(0))
        for m in _SCRIPTURE_RE.finditer(text)
    ]
    for passage in context.precept:
        sources.append(
            Source(
                type="precept",
                reference=passage.reference,
                url=passage.url,
                snippet=passage.text[:_SNIPPET_CHARS],
            )
        )
    return sources


def parse_follow_ups(raw: str, limit: int = 3) -> list[str]:
    """Split model output into at most *limit* non-empty question lines."""
    questions: list[str] = []
    for line in raw.splitlines():
        line = re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", line).strip()
        if line:
            questions.append(line)
    return questions[:limit]


def generate_follow_ups(model: str, transcript: str, max_tokens: int = 200) -> Outcome[list[str]]:
    """Ask for three short follow-up questions about *transcript*.

    Never raises for provider failures: returns ``Outcome.degraded([])``.
    """
    messages = [
        {"role": "system", "content": _FOLLOWUP_PROMPT},
        {
            "role": "user",
            "content": "Based on this conversation, suggest follow-up questions:\n\n"
            + transcript[:_TRANSCRIPT_CHARS],
        },
    ]
    try:
        raw = complete(model, messages, max_tokens=max_tokens, num_retries=0)
    except GenerationError as exc:
        logger.warning("Follow-up generation failed: %s", exc)
        return Outcome.degraded([], str(exc))
    return Outcome.ok(parse_follow_ups(raw))
