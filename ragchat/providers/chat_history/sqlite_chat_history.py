"""SQLite-backed chat-history provider.

Persists question/answer exchanges to a local SQLite database at
``data/chat_history.db``.  Uses ``aiosqlite`` for async I/O.  Rows are only
ever inserted or deleted per conversation, never updated.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import aiosqlite
import structlog

from ragchat.interfaces.chat_history_provider import IChatHistoryProvider
from ragchat.models.rag import ChatExchange

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/chat_history.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS chat_exchanges (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     TEXT    NOT NULL,
    store_id    TEXT    NOT NULL,
    session_id  TEXT    NOT NULL,
    question    TEXT    NOT NULL,
    answer      TEXT    NOT NULL,
    created_at  TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_chat_conversation "
    "ON chat_exchanges(user_id, store_id, session_id);",
    "CREATE INDEX IF NOT EXISTS idx_chat_user ON chat_exchanges(user_id);",
]

_INSERT_SQL = """\
INSERT INTO chat_exchanges (user_id, store_id, session_id, question, answer, created_at)
VALUES (?, ?, ?, ?, ?, ?);
"""

_SELECT_HISTORY_SQL = """\
SELECT user_id, store_id, session_id, question, answer, created_at
FROM chat_exchanges
WHERE user_id = ? AND store_id = ? AND session_id = ?
ORDER BY id ASC;
"""


class SQLiteChatHistoryProvider(IChatHistoryProvider):
    """SQLite-backed chat-history persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the exchanges table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("chat_history_db_initialized", path=str(self._db_path))

    async def get_history(
        self,
        user_id: str,
        store_id: str,
        session_id: str,
        limit: int | None = None,
    ) -> list[ChatExchange]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_HISTORY_SQL, (user_id, store_id, session_id))
            rows = await cursor.fetchall()

        exchanges = [
            ChatExchange(
                user_id=row["user_id"],
                store_id=row["store_id"],
                session_id=row["session_id"],
                question=row["question"],
                answer=row["answer"],
                timestamp=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]
        if limit is not None:
            exchanges = exchanges[-limit:] if limit > 0 else []
        return exchanges

    async def append(self, exchange: ChatExchange) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_SQL,
                (
                    exchange.user_id,
                    exchange.store_id,
                    exchange.session_id,
                    exchange.question,
                    exchange.answer,
                    exchange.timestamp.isoformat(),
                ),
            )
            await db.commit()
        logger.debug(
            "chat_exchange_appended",
            user_id=exchange.user_id,
            store_id=exchange.store_id,
            session_id=exchange.session_id,
        )

    async def list_users(self) -> list[str]:
        return await self._distinct(
            "SELECT DISTINCT user_id FROM chat_exchanges ORDER BY user_id", ()
        )

    async def list_stores(self, user_id: str) -> list[str]:
        return await self._distinct(
            "SELECT DISTINCT store_id FROM chat_exchanges WHERE user_id = ? ORDER BY store_id",
            (user_id,),
        )

    async def list_sessions(self, user_id: str, store_id: str) -> list[str]:
        return await self._distinct(
            "SELECT DISTINCT session_id FROM chat_exchanges "
            "WHERE user_id = ? AND store_id = ? ORDER BY session_id",
            (user_id, store_id),
        )

    async def clear(self, user_id: str, store_id: str, session_id: str) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "DELETE FROM chat_exchanges WHERE user_id = ? AND store_id = ? AND session_id = ?",
                (user_id, store_id, session_id),
            )
            await db.commit()
            removed = cursor.rowcount
        logger.info(
            "chat_history_cleared",
            user_id=user_id,
            store_id=store_id,
            session_id=session_id,
            removed=removed,
        )
        return removed

    async def _distinct(self, sql: str, params: tuple) -> list[str]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [row[0] for row in rows]
