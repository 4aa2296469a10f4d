"""In-memory chat-history provider.

Suitable for tests and single-process deployments where history need not
survive a restart.  Swap for :class:`SQLiteChatHistoryProvider` via the
``CHAT_HISTORY_BACKEND`` setting.
"""

from __future__ import annotations

import asyncio

import structlog

from ragchat.interfaces.chat_history_provider import IChatHistoryProvider
from ragchat.models.rag import ChatExchange

logger = structlog.get_logger(logger_name=__name__)

_Key = tuple[str, str, str]


class InMemoryChatHistoryProvider(IChatHistoryProvider):
    """Chat history held in a dict keyed by ``(user_id, store_id, session_id)``."""

    def __init__(self) -> None:
        self._conversations: dict[_Key, list[ChatExchange]] = {}
        self._lock = asyncio.Lock()

    async def get_history(
        self,
        user_id: str,
        store_id: str,
        session_id: str,
        limit: int | None = None,
    ) -> list[ChatExchange]:
        exchanges = list(self._conversations.get((user_id, store_id, session_id), []))
        if limit is not None:
            exchanges = exchanges[-limit:] if limit > 0 else []
        return exchanges

    async def append(self, exchange: ChatExchange) -> None:
        key = (exchange.user_id, exchange.store_id, exchange.session_id)
        async with self._lock:
            self._conversations.setdefault(key, []).append(exchange)
        logger.debug("chat_exchange_appended", user_id=key[0], store_id=key[1], session_id=key[2])

    async def list_users(self) -> list[str]:
        return sorted({user for user, _, _ in self._conversations})

    async def list_stores(self, user_id: str) -> list[str]:
        return sorted({store for user, store, _ in self._conversations if user == user_id})

    async def list_sessions(self, user_id: str, store_id: str) -> list[str]:
        return sorted(
            session
            for user, store, session in self._conversations
            if user == user_id and store == store_id
        )

    async def clear(self, user_id: str, store_id: str, session_id: str) -> int:
        async with self._lock:
            removed = self._conversations.pop((user_id, store_id, session_id), [])
        logger.info(
            "chat_history_cleared",
            user_id=user_id,
            store_id=store_id,
            session_id=session_id,
            removed=len(removed),
        )
        return len(removed)
