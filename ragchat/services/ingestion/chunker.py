"""Content-aware text chunking.

Splits :class:`~ragchat.models.rag.RawDocument` objects into
:class:`~ragchat.models.rag.Chunk` objects sized for embedding models.

The algorithm, per document:

1. **Normalize** whitespace.  A document that is empty afterwards yields
   no chunks.
2. **Classify** the text as technical, narrative or general with a
   table-driven heuristic (:func:`classify_content`).
3. **Pick a split profile**.  The separators always follow the content
   type: statement boundaries for code-like text, sentence endings for
   prose.  Under the ``semantic`` strategy the chunk size and overlap are
   keyed by content type too; under ``standard`` they come from the
   configuration.
4. **Recursively split**: try separators in priority order (paragraph,
   line, sentence punctuation, space, hard cut), keeping each separator
   attached to the piece that follows it, and recurse on pieces that are
   still too large.  Small pieces are merged greedily up to the chunk size,
   carrying ``overlap`` trailing characters into the next chunk.
5. **Clean up**: normalize each piece again, drop pieces shorter than
   ``min_chunk_size``, and attach metadata.

The engine is pure and deterministic.  It never touches storage and never
raises on odd input; unusual text simply produces fewer chunks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from ragchat.config.tiers import ChunkingConfig, ChunkingStrategy
from ragchat.models.rag import Chunk, ChunkMetadata, ChunkQuality, ContentType, RawDocument

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_CHUNKING = ChunkingConfig(
    strategy=ChunkingStrategy.STANDARD, chunk_size=800, chunk_overlap=150, min_chunk_size=30
)

# Chunks longer than this are tagged ``high`` quality.
_HIGH_QUALITY_LENGTH = 100

# ---------------------------------------------------------------------------
# Content classification
# ---------------------------------------------------------------------------

# (pattern, weight): each pattern counts once if it matches anywhere.
_TECHNICAL_SIGNALS: tuple[tuple[re.Pattern[str], int], ...] = (
    (re.compile(r"[{}]"), 1),
    (re.compile(r"\bfunction\s*\w*\s*\("), 2),
    (re.compile(r"\b(?:def|class)\s+\w+\s*[(:]"), 2),
    (re.compile(r"\b\w+\.\w+\("), 1),
    (re.compile(r"=>"), 1),
    (re.compile(r"\bAPI\b"), 1),
    (re.compile(r";[ \t]*$", re.MULTILINE), 1),
    (re.compile(r"^\s*(?:import|from|const|let|var|return)\s", re.MULTILINE), 1),
)
_TECHNICAL_THRESHOLD = 2

_SENTENCE_END = re.compile(r"[.!?](?:\s|$)")
# Terminal punctuation marks per 1000 characters.
_NARRATIVE_MIN_DENSITY = 4.0


def technical_score(text: str) -> int:
    """Sum the weights of every technical signal present in *text*."""
    return sum(weight for pattern, weight in _TECHNICAL_SIGNALS if pattern.search(text))


def classify_content(text: str) -> ContentType:
    """Classify *text* as technical, narrative or general.

    Technical wins when enough code-like signals are present.  Text is
    narrative when it has more sentences than lines and a high density of
    sentence-ending punctuation.  Everything else is general.
    """
    if not text:
        return ContentType.GENERAL
    if technical_score(text) >= _TECHNICAL_THRESHOLD:
        return ContentType.TECHNICAL

    sentences = len(_SENTENCE_END.findall(text))
    lines = text.count("\n") + 1
    density = sentences * 1000 / len(text)
    if sentences > lines and density >= _NARRATIVE_MIN_DENSITY:
        return ContentType.NARRATIVE
    return ContentType.GENERAL


# ---------------------------------------------------------------------------
# Split profiles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SplitProfile:
    chunk_size: int
    chunk_overlap: int
    separators: tuple[str, ...]


_STATEMENT_SEPARATORS = ("\n\n", "\n", ". ", ":", ";", " ", "")
_SENTENCE_SEPARATORS = ("\n\n", "\n", ". ", "! ", "? ", " ", "")

_SEMANTIC_PROFILES: dict[ContentType, SplitProfile] = {
    ContentType.TECHNICAL: SplitProfile(600, 100, _STATEMENT_SEPARATORS),
    ContentType.NARRATIVE: SplitProfile(1000, 200, _SENTENCE_SEPARATORS),
    ContentType.GENERAL: SplitProfile(800, 150, _SENTENCE_SEPARATORS),
}


def select_profile(content_type: ContentType, config: ChunkingConfig) -> SplitProfile:
    """Resolve the split profile for a document of *content_type*."""
    semantic = _SEMANTIC_PROFILES[content_type]
    if config.strategy is ChunkingStrategy.SEMANTIC:
        return semantic
    return SplitProfile(config.chunk_size, config.chunk_overlap, semantic.separators)


# ---------------------------------------------------------------------------
# Whitespace normalization
# ---------------------------------------------------------------------------

_HORIZONTAL_WS = re.compile(r"[ \t\f\v]+")
_SPACE_AROUND_NEWLINE = re.compile(r" *\n *")
_BLANK_LINE_RUN = re.compile(r"\n{2,}")


def normalize_text(text: str) -> str:
    """Collapse spaces/tabs, collapse blank-line runs to one ``\\n\\n``, trim."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _SPACE_AROUND_NEWLINE.sub("\n", text)
    text = _BLANK_LINE_RUN.sub("\n\n", text)
    return text.strip()


# ---------------------------------------------------------------------------
# Recursive splitter
# ---------------------------------------------------------------------------

class RecursiveSplitter:
    """Separator-priority splitter with greedy merging and character overlap.

    Parameters
    ----------
    chunk_size:
        Maximum characters per merged piece (a single unsplittable piece may
        still exceed it only when the hard-cut separator is absent).
    chunk_overlap:
        Characters of trailing context carried into the next piece.
    separators:
        Tried in order; ``""`` means cut between characters.
    """

    def __init__(self, chunk_size: int, chunk_overlap: int, separators: tuple[str, ...]) -> None:
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._separators = separators

    def split(self, text: str) -> list[str]:
        return self._split(text, self._separators)

    def _split(self, text: str, separators: tuple[str, ...]) -> list[str]:
        separator = separators[-1] if separators else ""
        remaining: tuple[str, ...] = ()
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                remaining = separators[i + 1 :]
                break

        final: list[str] = []
        pending: list[str] = []
        for piece in self._split_keeping_separator(text, separator):
            if len(piece) < self._chunk_size:
                pending.append(piece)
                continue
            if pending:
                final.extend(self._merge(pending))
                pending = []
            if remaining:
                final.extend(self._split(piece, remaining))
            else:
                final.append(piece)
        if pending:
            final.extend(self._merge(pending))
        return final

    @staticmethod
    def _split_keeping_separator(text: str, separator: str) -> list[str]:
        if separator == "":
            return list(text)
        parts = text.split(separator)
        # The separator stays at the start of the piece that follows it.
        pieces = [parts[0], *(separator + part for part in parts[1:])]
        return [p for p in pieces if p]

    def _merge(self, pieces: list[str]) -> list[str]:
        merged: list[str] = []
        window: list[str] = []
        total = 0
        for piece in pieces:
            length = len(piece)
            if total + length > self._chunk_size and window:
                joined = "".join(window).strip()
                if joined:
                    merged.append(joined)
                # Drop from the front until only the overlap tail remains
                # and the next piece fits.
                while total > self._chunk_overlap or (total + length > self._chunk_size and total > 0):
                    total -= len(window.pop(0))
            window.append(piece)
            total += length
        joined = "".join(window).strip()
        if joined:
            merged.append(joined)
        return merged


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class ChunkingEngine:
    """Splits raw documents into normalized, metadata-tagged chunks."""

    def split(
        self,
        documents: list[RawDocument],
        config: ChunkingConfig | None = None,
    ) -> list[Chunk]:
        """Split every document in *documents*; chunk indices restart per document.

        Parameters
        ----------
        documents:
            Raw documents, e.g. from the document loader.
        config:
            Chunking section of the active tier.  Defaults to the standard
            800/150 profile with a 30-character minimum.

        Returns
        -------
        list[Chunk]
            All surviving chunks, in document order.
        """
        config = config or DEFAULT_CHUNKING
        chunks: list[Chunk] = []
        for document in documents:
            chunks.extend(self.split_document(document, config))
        return chunks

    def split_document(self, document: RawDocument, config: ChunkingConfig) -> list[Chunk]:
        text = normalize_text(document.content)
        if not text:
            logger.debug("chunking_skipped_empty", source=document.source, page=document.page)
            return []

        content_type = classify_content(text)
        profile = select_profile(content_type, config)
        splitter = RecursiveSplitter(profile.chunk_size, profile.chunk_overlap, profile.separators)

        pieces = [normalize_text(piece) for piece in splitter.split(text)]
        kept = [piece for piece in pieces if piece and len(piece) >= config.min_chunk_size]

        chunks = [
            Chunk(
                content=piece,
                metadata=ChunkMetadata(
                    source=document.source,
                    page=document.page,
                    chunk_index=index,
                    chunk_length=len(piece),
                    content_type=content_type,
                    quality=(
                        ChunkQuality.HIGH if len(piece) > _HIGH_QUALITY_LENGTH else ChunkQuality.MEDIUM
                    ),
                    processed=True,
                ),
            )
            for index, piece in enumerate(kept)
        ]

        logger.debug(
            "chunking_complete",
            source=document.source,
            page=document.page,
            content_type=content_type.value,
            strategy=config.strategy.value,
            chunk_size=profile.chunk_size,
            num_chunks=len(chunks),
            dropped=len(pieces) - len(kept),
        )
        return chunks
