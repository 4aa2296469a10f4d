"""Unit tests for RAG data models and the error hierarchy."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ragchat.models.rag import (
    Chunk,
    ChunkMetadata,
    ChunkQuality,
    ContentType,
    RawDocument,
    RetrievalResult,
    StoreHandle,
    StoreState,
)
from ragchat.utils.errors import (
    LLMError,
    ProviderError,
    RagChatError,
    RateLimitError,
    StoreNotFoundError,
)
from tests.conftest import make_chunk


class TestChunk:
    def test_length_must_match_content(self) -> None:
        with pytest.raises(ValidationError, match="chunk_length"):
            Chunk(
                content="twelve chars",
                metadata=ChunkMetadata(source="a.txt", chunk_index=0, chunk_length=5),
            )

    def test_empty_content_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Chunk(content="", metadata=ChunkMetadata(source="a.txt", chunk_index=0, chunk_length=1))

    def test_metadata_defaults(self) -> None:
        meta = ChunkMetadata(source="a.txt", chunk_index=0, chunk_length=3)
        assert meta.content_type == ContentType.GENERAL
        assert meta.quality == ChunkQuality.MEDIUM
        assert meta.processed is True
        assert meta.page is None

    def test_chunk_id_is_deterministic(self) -> None:
        a = make_chunk("Same text in the same place.", "a.txt", 2)
        b = make_chunk("Same text in the same place.", "a.txt", 2)
        assert a.chunk_id == b.chunk_id
        assert len(a.chunk_id) == 64

    def test_chunk_id_depends_on_provenance(self) -> None:
        base = make_chunk("Same text.", "a.txt", 0)
        assert base.chunk_id != make_chunk("Same text.", "b.txt", 0).chunk_id
        assert base.chunk_id != make_chunk("Same text.", "a.txt", 1).chunk_id
        assert base.chunk_id != make_chunk("Same text.", "a.txt", 0, page=4).chunk_id

    def test_frozen(self) -> None:
        chunk = make_chunk("Immutable text.")
        with pytest.raises(ValidationError):
            chunk.content = "changed"  # type: ignore[misc]


class TestOtherModels:
    def test_raw_document_page_is_one_based(self) -> None:
        with pytest.raises(ValidationError):
            RawDocument(content="x", source="a.pdf", page=0)

    @pytest.mark.parametrize("score", [-0.1, 1.01])
    def test_retrieval_score_bounds(self, score: float) -> None:
        with pytest.raises(ValidationError):
            RetrievalResult(chunk=make_chunk("Some retrieved text."), score=score)

    def test_store_handle_defaults(self) -> None:
        handle = StoreHandle(name="atlas", embedding_dimension=256, backing_path="/tmp/atlas")
        assert handle.state == StoreState.LOADED
        assert handle.chunk_count == 0
        assert handle.created_at.tzinfo is not None

    def test_store_handle_copy_on_update(self) -> None:
        handle = StoreHandle(name="atlas", embedding_dimension=256, backing_path="/tmp/atlas")
        updated = handle.model_copy(update={"chunk_count": 7})
        assert updated.chunk_count == 7
        assert handle.chunk_count == 0


class TestErrors:
    def test_str_includes_provider(self) -> None:
        assert str(RateLimitError(provider_name="openai")) == "[openai] Rate limit exceeded"
        assert str(StoreNotFoundError(message="no store 'x'")) == "no store 'x'"

    def test_hierarchy(self) -> None:
        assert issubclass(RateLimitError, ProviderError)
        assert issubclass(LLMError, ProviderError)
        assert issubclass(ProviderError, RagChatError)
        assert issubclass(StoreNotFoundError, RagChatError)
        assert not issubclass(StoreNotFoundError, ProviderError)
