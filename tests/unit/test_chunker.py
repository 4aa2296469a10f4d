"""Unit tests for the ChunkingEngine -- content-aware recursive splitting."""

from __future__ import annotations

import pytest

from ragchat.config.tiers import ChunkingConfig, ChunkingStrategy
from ragchat.models.rag import ChunkQuality, ContentType, RawDocument
from ragchat.services.ingestion.chunker import (
    ChunkingEngine,
    RecursiveSplitter,
    classify_content,
    normalize_text,
    select_profile,
    technical_score,
)
from tests.conftest import NARRATIVE_PHRASE

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(
    strategy: ChunkingStrategy = ChunkingStrategy.STANDARD,
    chunk_size: int = 800,
    chunk_overlap: int = 150,
    min_chunk_size: int = 30,
) -> ChunkingConfig:
    return ChunkingConfig(
        strategy=strategy,
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        min_chunk_size=min_chunk_size,
    )


def _doc(content: str, source: str = "story.txt", page: int | None = None) -> RawDocument:
    return RawDocument(content=content, source=source, page=page)


# ===================================================================
# Classification
# ===================================================================


class TestClassifyContent:
    def test_narrative_prose(self, sample_narrative_text: str) -> None:
        assert technical_score(sample_narrative_text) == 0
        assert classify_content(sample_narrative_text) == ContentType.NARRATIVE

    def test_code_is_technical(self, sample_technical_text: str) -> None:
        assert technical_score(sample_technical_text) >= 2
        assert classify_content(sample_technical_text) == ContentType.TECHNICAL

    def test_single_weak_signal_is_not_technical(self) -> None:
        # "API" alone scores 1, below the threshold.
        text = "The API was discussed at length. Everyone agreed. Nobody left early. It rained."
        assert technical_score(text) == 1
        assert classify_content(text) != ContentType.TECHNICAL

    def test_list_without_sentences_is_general(self) -> None:
        text = "Quarterly figures\nRevenue 10\nCosts 4\nMargin 6"
        assert classify_content(text) == ContentType.GENERAL

    def test_empty_text_is_general(self) -> None:
        assert classify_content("") == ContentType.GENERAL


# ===================================================================
# Profiles and normalization
# ===================================================================


class TestSelectProfile:
    def test_standard_uses_configured_sizes(self) -> None:
        profile = select_profile(ContentType.TECHNICAL, _config(chunk_size=500, chunk_overlap=50))
        assert (profile.chunk_size, profile.chunk_overlap) == (500, 50)
        # Statement boundaries for code-like text.
        assert ";" in profile.separators

    def test_semantic_keys_sizes_by_content_type(self) -> None:
        config = _config(strategy=ChunkingStrategy.SEMANTIC, chunk_size=500, chunk_overlap=50)
        assert select_profile(ContentType.TECHNICAL, config).chunk_size == 600
        assert select_profile(ContentType.NARRATIVE, config).chunk_size == 1000
        assert select_profile(ContentType.GENERAL, config).chunk_size == 800

    def test_separators_end_with_hard_cut(self) -> None:
        for content_type in ContentType:
            assert select_profile(content_type, _config()).separators[-1] == ""


class TestNormalizeText:
    def test_collapses_whitespace_and_blank_lines(self) -> None:
        assert normalize_text("  a  \t b\r\n\r\n\r\n\r\n c ") == "a b\n\nc"

    def test_whitespace_only_becomes_empty(self) -> None:
        assert normalize_text(" \n\t \n ") == ""


# ===================================================================
# Recursive splitter
# ===================================================================


class TestRecursiveSplitter:
    def test_pieces_respect_size_and_overlap(self) -> None:
        text = " ".join(f"word{i}" for i in range(60))
        pieces = RecursiveSplitter(50, 20, (" ", "")).split(text)

        assert len(pieces) > 1
        assert all(len(p) <= 50 for p in pieces)
        for previous, current in zip(pieces, pieces[1:]):
            # The first word of each piece was carried over from the previous one.
            assert current.split()[0] in previous.split()

    def test_hard_cut_when_no_separator_matches(self) -> None:
        pieces = RecursiveSplitter(10, 0, (" ", "")).split("x" * 35)
        assert [len(p) for p in pieces] == [10, 10, 10, 5]

    def test_small_text_is_one_piece(self) -> None:
        assert RecursiveSplitter(100, 10, ("\n\n", " ", "")).split("short text") == ["short text"]


# ===================================================================
# Engine
# ===================================================================


class TestChunkingEngine:
    def test_standard_chunks_never_exceed_size(self, sample_narrative_text: str) -> None:
        chunks = ChunkingEngine().split([_doc(sample_narrative_text)], _config(chunk_size=200, chunk_overlap=40))

        assert len(chunks) > 5
        assert all(len(c.content) <= 200 for c in chunks)

    def test_semantic_narrative_uses_larger_profile(self, sample_narrative_text: str) -> None:
        engine = ChunkingEngine()
        standard = engine.split([_doc(sample_narrative_text)], _config(chunk_size=600, chunk_overlap=100))
        semantic = engine.split(
            [_doc(sample_narrative_text)],
            _config(strategy=ChunkingStrategy.SEMANTIC, chunk_size=600, chunk_overlap=100),
        )

        assert max(len(c.content) for c in standard) <= 600
        assert max(len(c.content) for c in semantic) > 600
        assert len(semantic) < len(standard)

    def test_phrase_survives_in_one_chunk(self, sample_narrative_text: str) -> None:
        chunks = ChunkingEngine().split([_doc(sample_narrative_text)])
        assert any(NARRATIVE_PHRASE in c.content for c in chunks)

    def test_metadata_is_attached(self, sample_narrative_text: str) -> None:
        chunks = ChunkingEngine().split(
            [_doc(sample_narrative_text, source="book.pdf", page=3)], _config(chunk_size=300, chunk_overlap=50)
        )

        assert [c.metadata.chunk_index for c in chunks] == list(range(len(chunks)))
        for chunk in chunks:
            assert chunk.metadata.source == "book.pdf"
            assert chunk.metadata.page == 3
            assert chunk.metadata.chunk_length == len(chunk.content)
            assert chunk.metadata.content_type == ContentType.NARRATIVE
            assert chunk.metadata.processed is True
            expected = ChunkQuality.HIGH if len(chunk.content) > 100 else ChunkQuality.MEDIUM
            assert chunk.metadata.quality == expected

    def test_indices_restart_per_document(self, sample_narrative_text: str) -> None:
        chunks = ChunkingEngine().split(
            [_doc(sample_narrative_text, "a.txt"), _doc(sample_narrative_text, "b.txt")],
            _config(chunk_size=400, chunk_overlap=50),
        )
        first_b = next(i for i, c in enumerate(chunks) if c.metadata.source == "b.txt")

        assert chunks[0].metadata.chunk_index == 0
        assert chunks[first_b].metadata.chunk_index == 0
        assert all(c.metadata.source == "a.txt" for c in chunks[:first_b])

    def test_chunks_are_normalized(self) -> None:
        text = "First   paragraph  with \t tabs and   spaces in it.\n\n\n\nSecond paragraph follows here."
        chunks = ChunkingEngine().split([_doc(text)], _config(min_chunk_size=10))

        for chunk in chunks:
            assert "  " not in chunk.content
            assert "\t" not in chunk.content
            assert "\n\n\n" not in chunk.content
            assert chunk.content == chunk.content.strip()

    @pytest.mark.parametrize("content", ["", "   \n\n \t ", "Tiny."])
    def test_empty_or_tiny_documents_yield_nothing(self, content: str) -> None:
        assert ChunkingEngine().split([_doc(content)]) == []

    def test_min_chunk_size_drops_short_pieces(self) -> None:
        text = "Short line.\n\n" + "A much longer paragraph that easily clears the minimum size. " * 3
        chunks = ChunkingEngine().split([_doc(text)], _config(chunk_size=100, chunk_overlap=10, min_chunk_size=40))

        assert chunks
        assert all(len(c.content) >= 40 for c in chunks)

    def test_split_is_deterministic(self, sample_technical_text: str) -> None:
        engine = ChunkingEngine()
        config = _config(chunk_size=120, chunk_overlap=20)
        first = engine.split([_doc(sample_technical_text)], config)
        second = engine.split([_doc(sample_technical_text)], config)

        assert first == second
        assert [c.chunk_id for c in first] == [c.chunk_id for c in second]

    def test_default_config_when_none(self, sample_narrative_text: str) -> None:
        chunks = ChunkingEngine().split([_doc(sample_narrative_text)], None)
        assert all(len(c.content) <= 800 for c in chunks)
