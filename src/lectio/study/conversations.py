"""Conversation store: conversations, transcripts and title backfill for one user."""

from __future__ import annotations

from lectio.db.models import ROLE_USER, Conversation, Message, PassageContext
from lectio.db.repository import Repository

_TITLE_CHARS = 50


class NotFoundError(LookupError):
    """Raised when a conversation (or the message an operation needs) does not exist."""


def make_title(message: str) -> str:
    """First 50 characters of *message*, with ``...`` when it was longer."""
    title = message[:_TITLE_CHARS]
    return title + "..." if len(message) > _TITLE_CHARS else title


class ConversationStore:
    """Per-user view over the conversation tables.

    A conversation belonging to another user is reported as missing.
    """

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def start(self, user_id: str, context: PassageContext | None = None) -> Conversation:
        return self._repo.create_conversation(user_id, context)

    def get(self, conv_id: str, user_id: str) -> Conversation:
        """Return the conversation or raise NotFoundError."""
        conv = self._repo.get_conversation(conv_id)
        if conv is None or conv.user_id != user_id:
            raise NotFoundError(f"Conversation not found: {conv_id}")
        return conv

    def list(self, user_id: str, limit: int = 20, offset: int = 0) -> tuple[list[Conversation], bool]:
        """Return one page of conversations and whether more exist after it."""
        rows = self._repo.list_conversations(user_id, limit=limit + 1, offset=offset)
        return rows[:limit], len(rows) > limit

    def delete(self, conv_id: str, user_id: str) -> None:
        self.get(conv_id, user_id)
        self._repo.delete_conversation(conv_id)

    def transcript(self, conv_id: str, with_sources: bool = False) -> list[Message]:
        return self._repo.list_messages(conv_id, with_sources=with_sources)

    def add_user_message(self, conv_id: str, content: str) -> Message:
        return self._repo.add_message(conv_id, ROLE_USER, content)

    def backfill_title(self, conv_id: str, first_message: str) -> bool:
        """Title the conversation after its first message unless it already has a title."""
        return self._repo.backfill_title(conv_id, make_title(first_message))
