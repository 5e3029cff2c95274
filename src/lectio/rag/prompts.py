"""Prompt builder: system prompt + retrieved context + recent history + new message."""

from __future__ import annotations

from enum import Enum

from lectio.db.models import ROLE_ASSISTANT, ROLE_USER, Message
from lectio.rag.retriever import RetrievalContext


class PromptMode(str, Enum):
    """Which system prompt frames the turn."""

    INDUCTIVE = "inductive"
    GENERAL = "general"


INDUCTIVE_PROMPT = """You are an expert Bible study assistant specializing in the Precept Inductive Bible Study Method.

## Your Role
- Guide users through Observation, Interpretation, and Application (OIA)
- Cite Scripture as the highest authority
- Reference PreceptAustin commentary when relevant (summarize, don't copy verbatim)
- Support apologetics and systematic theology questions
- Be concise but thorough

## Response Format
When helping with inductive study, structure your response with these sections when appropriate:

**OBSERVATION** (What does the text say?)
- Key observations about the passage
- Who, What, When, Where, Why, How

**INTERPRETATION** (What does the text mean?)
- Historical and cultural context
- Cross-references to other Scripture
- Original language insights if relevant

**APPLICATION** (How should I respond?)
- Personal application points
- Commands to obey, truths to believe

## Citation Format
Always cite your sources inline:
- Scripture: Use format like (John 3:16) or (Romans 8:28-29)
- PreceptAustin: Mention "According to PreceptAustin commentary..." with the key insight

## Guidelines
- Scripture is the highest authority - always point back to the text
- Be helpful and encouraging in the faith
- If unsure, acknowledge uncertainty
- Keep responses focused and actionable"""

GENERAL_PROMPT = """You are a knowledgeable, friendly Bible study assistant.

Answer questions about the Bible, its history, theology and application conversationally and accurately.
- Treat Scripture as the highest authority and cite it inline, e.g. (John 3:16) or (Romans 8:28-29)
- When retrieved commentary is relevant, summarize it and mention PreceptAustin as the source
- If unsure, acknowledge uncertainty
- Keep answers clear and concise"""

_SYSTEM_PROMPTS: dict[PromptMode, str] = {
    PromptMode.INDUCTIVE: INDUCTIVE_PROMPT,
    PromptMode.GENERAL: GENERAL_PROMPT,
}


def select_mode(requested: str | None, has_passage: bool) -> PromptMode:
    """Explicit mode wins; otherwise inductive with a passage, general without.

    Raises:
        ValueError: If *requested* is not a known mode.
    """
    if requested:
        return PromptMode(requested)
    return PromptMode.INDUCTIVE if has_passage else PromptMode.GENERAL


def format_context(context: RetrievalContext, snippet_chars: int = 300) -> str:
    """Render *context* as markdown: scripture markers, then attributed snippets."""
    parts: list[str] = []
    if context.scripture:
        parts.append("**Scripture Context:**")
        parts.extend(context.scripture)
    if context.precept:
        if parts:
            parts.append("")
        parts.append("**PreceptAustin Commentary:**")
        for p in context.precept:
            snippet = p.text[:snippet_chars]
            ellipsis = "..." if len(p.text) > snippet_chars else ""
            parts.append(f'- {p.reference}: "{snippet}{ellipsis}" [Source]({p.url})')
    return "\n".join(parts)


def build_prompt(
    mode: PromptMode,
    context: RetrievalContext,
    history: list[Message],
    message: str,
    history_limit: int = 10,
    snippet_chars: int = 300,
) -> list[dict]:
    """Assemble the ordered message list for the generation client.

    Args:
        mode: Selects the system prompt.
        context: Retrieval context for this turn.
        history: Prior transcript, oldest first, NOT including *message*.
        message: The new user message; never truncated.
        history_limit: Most recent history messages kept.
        snippet_chars: Per-snippet character cap for commentary.

    Returns:
        ``[system, *recent user/assistant history, user]``.
    """
    system = _SYSTEM_PROMPTS[mode]
    rendered = format_context(context, snippet_chars)
    if rendered:
        system = f"{system}\n\n## Retrieved Context\n{rendered}"

    messages: list[dict] = [{"role": "system", "content": system}]
    recent = history[-history_limit:] if history_limit > 0 else []
    for msg in recent:
        if msg.role in (ROLE_USER, ROLE_ASSISTANT):
            messages.append({"role": msg.role, "content": msg.content})
    messages.append({"role": ROLE_USER, "content": message})
    return messages
