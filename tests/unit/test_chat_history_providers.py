"""Unit tests for the in-memory and SQLite chat-history providers.

Both backends run the same behavioural checks; each SQLite test uses a
temporary database for isolation.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from ragchat.interfaces.chat_history_provider import IChatHistoryProvider
from ragchat.models.rag import ChatExchange
from ragchat.providers.chat_history.memory_chat_history import InMemoryChatHistoryProvider
from ragchat.providers.chat_history.sqlite_chat_history import SQLiteChatHistoryProvider


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def provider(request: pytest.FixtureRequest, tmp_path: Path) -> IChatHistoryProvider:
    """Initialized provider for each backend."""
    if request.param == "memory":
        prov: IChatHistoryProvider = InMemoryChatHistoryProvider()
    else:
        prov = SQLiteChatHistoryProvider(db_path=tmp_path / "nested" / "chat.db")
    await prov.initialize()
    return prov


_T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _exchange(
    question: str,
    user_id: str = "ana",
    store_id: str = "atlas",
    session_id: str = "s1",
    minutes: int = 0,
) -> ChatExchange:
    return ChatExchange(
        user_id=user_id,
        store_id=store_id,
        session_id=session_id,
        question=question,
        answer=f"answer to {question}",
        timestamp=_T0 + timedelta(minutes=minutes),
    )


# ─── Append and read ─────────────────────────────────────────────────


class TestAppendAndRead:
    @pytest.mark.asyncio
    async def test_empty_conversation(self, provider: IChatHistoryProvider) -> None:
        assert await provider.get_history("ana", "atlas", "s1") == []

    @pytest.mark.asyncio
    async def test_order_is_preserved(self, provider: IChatHistoryProvider) -> None:
        for i, question in enumerate(["first", "second", "third"]):
            await provider.append(_exchange(question, minutes=i))

        history = await provider.get_history("ana", "atlas", "s1")

        assert [e.question for e in history] == ["first", "second", "third"]
        assert history[0].answer == "answer to first"
        assert history[2].timestamp == _T0 + timedelta(minutes=2)

    @pytest.mark.asyncio
    async def test_limit_keeps_most_recent(self, provider: IChatHistoryProvider) -> None:
        for i in range(5):
            await provider.append(_exchange(f"q{i}", minutes=i))

        assert [e.question for e in await provider.get_history("ana", "atlas", "s1", limit=2)] == ["q3", "q4"]
        assert await provider.get_history("ana", "atlas", "s1", limit=0) == []

    @pytest.mark.asyncio
    async def test_conversations_are_keyed_by_triple(self, provider: IChatHistoryProvider) -> None:
        await provider.append(_exchange("mine"))
        await provider.append(_exchange("other user", user_id="bo"))
        await provider.append(_exchange("other store", store_id="log"))
        await provider.append(_exchange("other session", session_id="s2"))

        history = await provider.get_history("ana", "atlas", "s1")
        assert [e.question for e in history] == ["mine"]


# ─── Listing and clearing ────────────────────────────────────────────


class TestListingAndClear:
    @pytest.mark.asyncio
    async def test_listing(self, provider: IChatHistoryProvider) -> None:
        await provider.append(_exchange("a", user_id="zed", store_id="log"))
        await provider.append(_exchange("b", user_id="ana", store_id="log", session_id="s9"))
        await provider.append(_exchange("c", user_id="ana", store_id="atlas"))
        await provider.append(_exchange("d", user_id="ana", store_id="log", session_id="s2"))

        assert await provider.list_users() == ["ana", "zed"]
        assert await provider.list_stores("ana") == ["atlas", "log"]
        assert await provider.list_sessions("ana", "log") == ["s2", "s9"]
        assert await provider.list_sessions("nobody", "log") == []

    @pytest.mark.asyncio
    async def test_clear_removes_one_conversation(self, provider: IChatHistoryProvider) -> None:
        await provider.append(_exchange("a"))
        await provider.append(_exchange("b"))
        await provider.append(_exchange("keep", session_id="s2"))

        assert await provider.clear("ana", "atlas", "s1") == 2
        assert await provider.get_history("ana", "atlas", "s1") == []
        assert len(await provider.get_history("ana", "atlas", "s2")) == 1
        assert await provider.clear("ana", "atlas", "s1") == 0


class TestSQLitePersistence:
    @pytest.mark.asyncio
    async def test_history_survives_new_instance(self, tmp_path: Path) -> None:
        db_path = tmp_path / "chat.db"
        first = SQLiteChatHistoryProvider(db_path=db_path)
        await first.initialize()
        await first.append(_exchange("persisted?"))

        second = SQLiteChatHistoryProvider(db_path=db_path)
        await second.initialize()

        history = await second.get_history("ana", "atlas", "s1")
        assert [e.question for e in history] == ["persisted?"]

    @pytest.mark.asyncio
    async def test_initialize_creates_parent_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "a" / "b" / "chat.db"
        await SQLiteChatHistoryProvider(db_path=db_path).initialize()
        assert db_path.exists()
