"""Shared pytest fixtures for the ragchat test suite."""

from __future__ import annotations

import asyncio
import hashlib
import math
import re
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragchat.config.settings import Settings
from ragchat.interfaces.embedding_provider import IEmbeddingProvider
from ragchat.interfaces.llm_provider import ILLMProvider, LLMResponse
from ragchat.models.rag import Chunk, ChunkMetadata, ChunkQuality, ContentType

# ---------------------------------------------------------------------------
# Deterministic embedding providers
# ---------------------------------------------------------------------------

_DIM = 256
_TOKEN = re.compile(r"[a-z0-9]+")


def _lexical_vector(text: str, dim: int = _DIM) -> list[float]:
    """Feature-hash word tokens into a unit vector.

    Texts sharing words get a high cosine similarity, so ranking tests can
    reason about which chunk a query should hit.
    """
    vector = [0.0] * dim
    for token in _TOKEN.findall(text.lower()):
        bucket = int.from_bytes(hashlib.sha256(token.encode()).digest()[:4], "big") % dim
        vector[bucket] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        vector[0] = 1.0
        return vector
    return [v / norm for v in vector]


class LexicalEmbeddingProvider(IEmbeddingProvider):
    """Deterministic bag-of-words embedding provider that counts its calls.

    Parameters
    ----------
    dimension:
        Vector length.
    delay:
        Seconds to sleep inside ``embed_documents``; widens race windows in
        concurrency tests.
    failures:
        Exceptions raised (in order) by the first ``embed_documents`` calls.
    """

    def __init__(
        self,
        dimension: int = _DIM,
        delay: float = 0.0,
        failures: list[Exception] | None = None,
    ) -> None:
        self._dimension = dimension
        self._delay = delay
        self._failures = list(failures or [])
        self.document_calls = 0
        self.query_calls = 0
        self.embedded_texts: list[str] = []

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.document_calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._failures:
            raise self._failures.pop(0)
        self.embedded_texts.extend(texts)
        return [_lexical_vector(t, self._dimension) for t in texts]

    async def embed_query(self, text: str) -> list[float]:
        self.query_calls += 1
        return _lexical_vector(text, self._dimension)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "lexical-test"

    def is_available(self) -> bool:
        return True


@pytest.fixture
def embedding_provider() -> LexicalEmbeddingProvider:
    return LexicalEmbeddingProvider()


# ---------------------------------------------------------------------------
# Mock LLM
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """Mock ILLMProvider whose invoke() returns a fixed answer.

    Override with ``mock_llm_provider.invoke.side_effect = ...`` for
    specific tests.
    """
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    mock.invoke = AsyncMock(
        return_value=LLMResponse(content="The keeper polished the lens.", model="mock-model", total_tokens=42)
    )
    return mock


# ---------------------------------------------------------------------------
# Sample texts and chunks
# ---------------------------------------------------------------------------

NARRATIVE_PHRASE = "the keeper polished the great brass lens every evening before the storm"


@pytest.fixture
def sample_narrative_text() -> str:
    """Roughly 500 words of prose with several paragraphs."""
    return (
        "Marta had lived on the island for eleven years before the winter that changed "
        "everything. The lighthouse stood on the northern cliff, white and narrow, and she "
        "climbed its stairs twice a day without thinking about the number of steps. Her "
        "brother visited each spring with supplies and newspapers. He never stayed longer "
        "than a week. The island was too quiet for him, he said, and the wind too loud.\n\n"
        "In the old logbook, written in a careful hand, was the note that "
        f"{NARRATIVE_PHRASE}. Marta kept the tradition alive. She liked the ritual of the "
        "cloth and the polish, the slow circles, the way the glass warmed under her palms. "
        "Fishermen on the mainland said they could tell when she had cleaned it. The beam "
        "reached further on those nights. Nobody believed them, but nobody argued either.\n\n"
        "That December the storms arrived early. The first one tore the shutters from the "
        "cottage and scattered the woodpile across the rocks. The second one took the "
        "radio mast. For nine days she heard no voice but her own. She talked to the gulls "
        "and to the kettle and sometimes to the lens itself. She was not afraid. She was "
        "only tired, and the nights grew longer with every passing week.\n\n"
        "On the tenth day a small boat appeared on the horizon. It rose and fell between "
        "the grey waves like a cork. Marta watched it through the window for an hour "
        "before she understood that it was not moving toward the harbour. It was drifting. "
        "She pulled on her boots and her heavy coat and ran down to the jetty. The wind "
        "pushed against her the whole way, as if it wanted her to turn back.\n\n"
        "The boat carried a boy of perhaps fourteen, soaked and silent, holding an oar "
        "with both hands. He had been fishing with his uncle when the engine failed. The "
        "uncle had tried to swim for help. Marta brought the boy inside, wrapped him in "
        "blankets, and made soup from the last of the onions. He slept for sixteen hours. "
        "When he woke, he asked whether the light had stayed on all night. She told him "
        "it always did. He said he had steered toward it until his arms gave out.\n\n"
        "The uncle was found two days later on the mainland, cold but alive. The story "
        "travelled from village to village and grew a little with each telling. By summer "
        "people said Marta had rowed out into the storm herself. She never corrected them. "
        "She simply climbed the stairs each evening, took up the cloth, and kept the old "
        "promise written in the logbook. The light was the only thing on the island that "
        "had never once failed, and she meant to keep it that way for as long as she could."
    )


@pytest.fixture
def sample_technical_text() -> str:
    """A short code-heavy document."""
    return (
        "The client wraps the REST API behind a small cache.\n\n"
        "function fetchUser(id) {\n"
        "  const url = buildUrl('/users', id);\n"
        "  return http.get(url).then((res) => res.json());\n"
        "}\n\n"
        "class UserCache:\n"
        "    def lookup(self, key):\n"
        "        return self.store.get(key)\n\n"
        "Call cache.lookup(userId) before hitting the API; misses fall through to fetchUser.\n"
    )


def make_chunk(
    content: str,
    source: str = "doc.txt",
    index: int = 0,
    content_type: ContentType = ContentType.GENERAL,
    page: int | None = None,
) -> Chunk:
    """Build a valid Chunk for tests that don't go through the chunker."""
    return Chunk(
        content=content,
        metadata=ChunkMetadata(
            source=source,
            chunk_index=index,
            chunk_length=len(content),
            content_type=content_type,
            quality=ChunkQuality.HIGH if len(content) > 100 else ChunkQuality.MEDIUM,
            processed=True,
            page=page,
        ),
    )


@pytest.fixture
def sample_chunks() -> list[Chunk]:
    return [
        make_chunk("Lighthouses guide ships along rocky coastlines at night.", "lights.txt", 0),
        make_chunk("A Fresnel lens concentrates the lamp into a powerful beam.", "lights.txt", 1),
        make_chunk("Sourdough bread needs a mature starter and a long fermentation.", "bread.txt", 0),
        make_chunk("Bakers fold the dough several times to build gluten strength.", "bread.txt", 1),
    ]


# ---------------------------------------------------------------------------
# Settings helper
# ---------------------------------------------------------------------------


def make_settings(tmp_path: Path, **overrides) -> Settings:
    """Settings pointing every path into *tmp_path*, with no API keys."""
    defaults = {
        "openai_api_key": "",
        "openai_base_url": "",
        "vectorstore_dir": str(tmp_path / "vectorstores"),
        "docs_dir": str(tmp_path / "docs"),
        "chat_history_backend": "memory",
        "chat_history_db_path": str(tmp_path / "chat_history.db"),
        "rag_tier": "default",
        "embedding_retry_base_delay": 0.0,
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(**defaults)
