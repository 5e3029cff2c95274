"""Chat orchestration: one grounded turn (sync or streamed) and regenerate."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Callable

from lectio.config import LectioConfig
from lectio.db.models import ROLE_ASSISTANT, ROLE_USER, Conversation, Message, PassageContext, Source
from lectio.db.repository import Repository
from lectio.db.vectors import VectorIndex
from lectio.rag import llm_client
from lectio.rag.citations import extract_sources, generate_follow_ups
from lectio.rag.llm_client import Embedder
from lectio.rag.prompts import PromptMode, build_prompt, select_mode
from lectio.rag.relay import StreamRelay
from lectio.rag.retriever import RetrievalContext, retrieve
from lectio.study.conversations import ConversationStore, NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    conversation_id: str
    message_id: str
    content: str
    sources: list[Source] = field(default_factory=list)
    follow_ups: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "conversation_id": self.conversation_id,
            "message_id": self.message_id,
            "content": self.content,
            "sources": [s.to_dict() for s in self.sources],
            "follow_ups": self.follow_ups,
        }


@dataclass
class _Turn:
    conversation: Conversation
    message: str
    history: list[Message]
    context: RetrievalContext
    prompt: list[dict]


class ChatService:
    """Run chat turns against one database connection.

    Args:
        repo: Repository on the request's connection.
        index: Vector index on the same connection.
        embedder: ``(texts) -> vectors`` callable for retrieval.
        config: Loaded configuration (models, limits).
        connect: Opens a fresh connection for persisting a streamed reply
            after the request scope has ended. Defaults to reusing *repo*.
    """

    def __init__(
        self,
        repo: Repository,
        index: VectorIndex,
        embedder: Embedder,
        config: LectioConfig,
        connect: Callable[[], sqlite3.Connection] | None = None,
    ) -> None:
        self._repo = repo
        self._index = index
        self._embedder = embedder
        self._config = config
        self._connect = connect
        self.conversations = ConversationStore(repo)

    # ------------------------------------------------------------------
    # Turn assembly
    # ------------------------------------------------------------------

    def _prepare(
        self,
        user_id: str,
        message: str,
        conversation_id: str | None,
        context: PassageContext | None,
        mode: str | None,
    ) -> _Turn:
        if not message or not message.strip():
            raise ValueError("Message is required")
        if context is not None and context.is_empty():
            context = None
        if mode:
            PromptMode(mode)

        if conversation_id:
            conv = self.conversations.get(conversation_id, user_id)
        else:
            conv = self.conversations.start(user_id, context)

        passage = context or conv.context
        history = self.conversations.transcript(conv.id)
        self.conversations.add_user_message(conv.id, message)

        retrieval = retrieve(
            message,
            self._repo,
            self._index,
            self._embedder,
            passage=passage,
            top_k=self._config.retrieval.top_k,
        )
        prompt = build_prompt(
            select_mode(mode, passage is not None),
            retrieval.value,
            history,
            message,
            history_limit=self._config.retrieval.history_limit,
            snippet_chars=self._config.retrieval.snippet_chars,
        )
        return _Turn(conv, message, history, retrieval.value, prompt)

    # ------------------------------------------------------------------
    # Synchronous
    # ------------------------------------------------------------------

    def send(
        self,
        user_id: str,
        message: str,
        conversation_id: str | None = None,
        context: PassageContext | None = None,
        mode: str | None = None,
    ) -> ChatReply:
        """Answer one message and persist the reply before returning.

        Raises:
            ValueError: Empty message or unknown mode.
            NotFoundError: *conversation_id* does not exist for *user_id*.
            GenerationError: The provider failed; no assistant message is stored.
        """
        turn = self._prepare(user_id, message, conversation_id, context, mode)
        gen = self._config.generation
        text = llm_client.complete(gen.model, turn.prompt, max_tokens=gen.max_tokens)

        sources = extract_sources(text, turn.context)
        reply = self._repo.add_assistant_message(turn.conversation.id, text, sources)
        if not turn.history:
            self.conversations.backfill_title(turn.conversation.id, turn.message)

        transcript = _render_transcript(turn.history) + f"\nuser: {turn.message}\nassistant: {text}"
        follow_ups = generate_follow_ups(
            self._config.followup_model,
            transcript.strip(),
            max_tokens=gen.followup_max_tokens,
        )
        return ChatReply(
            conversation_id=turn.conversation.id,
            message_id=reply.id,
            content=text,
            sources=reply.sources,
            follow_ups=follow_ups.value,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def stream(
        self,
        user_id: str,
        message: str,
        conversation_id: str | None = None,
        context: PassageContext | None = None,
        mode: str | None = None,
    ) -> tuple[str, StreamRelay]:
        """Open a streamed reply.

        Returns:
            ``(conversation_id, relay)``; iterate the relay to forward SSE
            frames. The full reply is persisted once the stream completes.

        Raises:
            Same as send(); GenerationError here means the stream never opened.
        """
        turn = self._prepare(user_id, message, conversation_id, context, mode)
        gen = self._config.generation
        source = llm_client.stream_sse(gen.model, turn.prompt, max_tokens=gen.max_tokens)

        def on_complete(text: str) -> None:
            self._persist_streamed(turn, text)

        return turn.conversation.id, StreamRelay(source, on_complete)

    def _persist_streamed(self, turn: _Turn, text: str) -> None:
        sources = extract_sources(text, turn.context)
        if self._connect is None:
            self._write_reply(self._repo, turn, text, sources)
            return
        conn = self._connect()
        try:
            self._write_reply(Repository(conn), turn, text, sources)
        finally:
            conn.close()

    @staticmethod
    def _write_reply(repo: Repository, turn: _Turn, text: str, sources: list[Source]) -> None:
        msg = repo.add_assistant_message(turn.conversation.id, text, sources)
        if not turn.history:
            ConversationStore(repo).backfill_title(turn.conversation.id, turn.message)
        logger.info(
            "Persisted streamed reply %s (%d chars, %d sources)", msg.id, len(text), len(sources)
        )

    # ------------------------------------------------------------------
    # Regenerate
    # ------------------------------------------------------------------

    def regenerate(self, conversation_id: str, user_id: str, mode: str | None = None) -> ChatReply:
        """Replace the last assistant reply with a freshly generated one.

        Raises:
            NotFoundError: No such conversation, or it has no user message.
                Nothing is changed.
            GenerationError: The provider failed. Nothing is changed.
        """
        conv = self.conversations.get(conversation_id, user_id)
        transcript = self.conversations.transcript(conv.id)

        last_user = _last(transcript, ROLE_USER)
        if last_user is None:
            raise NotFoundError(f"No user message to regenerate from in {conversation_id}")
        last_assistant = _last(transcript, ROLE_ASSISTANT)
        dropped = {last_user.id} | ({last_assistant.id} if last_assistant else set())
        history = [m for m in transcript if m.id not in dropped]

        retrieval = retrieve(
            last_user.content,
            self._repo,
            self._index,
            self._embedder,
            passage=conv.context,
            top_k=self._config.retrieval.top_k,
        )
        prompt = build_prompt(
            select_mode(mode, conv.context is not None),
            retrieval.value,
            history,
            last_user.content,
            history_limit=self._config.retrieval.history_limit,
            snippet_chars=self._config.retrieval.snippet_chars,
        )
        gen = self._config.generation
        text = llm_client.complete(gen.model, prompt, max_tokens=gen.max_tokens)

        sources = extract_sources(text, retrieval.value)
        reply = self._repo.replace_assistant_message(
            conv.id, last_assistant.id if last_assistant else None, text, sources
        )
        return ChatReply(
            conversation_id=conv.id,
            message_id=reply.id,
            content=text,
            sources=reply.sources,
        )


def _last(messages: list[Message], role: str) -> Message | None:
    for msg in reversed(messages):
        if msg.role == role:
            return msg
    return None


def _render_transcript(messages: list[Message]) -> str:
    return "\n".join(f"{m.role}: {m.content}" for m in messages)
