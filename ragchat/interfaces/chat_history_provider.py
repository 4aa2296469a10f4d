"""Abstract base class for chat-history persistence.

Conversations are keyed by the triple ``(user_id, store_id, session_id)``
and are append-only: exchanges are added in order and never edited.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ragchat.models.rag import ChatExchange


# Concrete implementations: InMemoryChatHistoryProvider, SQLiteChatHistoryProvider
# Located in: ragchat/providers/chat_history/
class IChatHistoryProvider(ABC):
    """Contract for chat-history backends used by the conversation orchestrator."""

    async def initialize(self) -> None:
        """Prepare the backend (create tables, directories).  No-op by default."""

    @abstractmethod
    async def get_history(
        self,
        user_id: str,
        store_id: str,
        session_id: str,
        limit: int | None = None,
    ) -> list[ChatExchange]:
        """Return exchanges for the triple, oldest first.

        When *limit* is set only the most recent *limit* exchanges are
        returned (still oldest first).
        """

    @abstractmethod
    async def append(self, exchange: ChatExchange) -> None:
        """Append *exchange* to its conversation."""

    @abstractmethod
    async def list_users(self) -> list[str]:
        """Return every user id with at least one exchange, sorted."""

    @abstractmethod
    async def list_stores(self, user_id: str) -> list[str]:
        """Return the store ids *user_id* has chatted against, sorted."""

    @abstractmethod
    async def list_sessions(self, user_id: str, store_id: str) -> list[str]:
        """Return the session ids for *user_id* on *store_id*, sorted."""

    @abstractmethod
    async def clear(self, user_id: str, store_id: str, session_id: str) -> int:
        """Delete one conversation; return the number of exchanges removed."""
