"""RAG pipeline data models.

Pydantic v2 models for raw documents, chunks, store handles, retrieval
results and chat exchanges.  All models are frozen: a chunk is created once
by the chunking engine and never mutated, a store handle is an immutable
snapshot replaced wholesale when its store changes, and chat exchanges are
append-only.

Pipeline overview:

    1. LOADING: ``.txt`` and ``.pdf`` files become :class:`RawDocument`
       objects (one per file, or one per PDF page).
    2. CHUNKING: the chunking engine splits each raw document into
       :class:`Chunk` objects tagged with :class:`ChunkMetadata`.
    3. INDEXING: chunks are embedded and written to a named store,
       described by a :class:`StoreHandle`.
    4. RETRIEVAL: a query yields ranked :class:`RetrievalResult` objects.
    5. ANSWERING: the model answer and its sources form a :class:`ChatAnswer`;
       the question/answer pair is logged as a :class:`ChatExchange`.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContentType(str, Enum):
    """Coarse classification of a document's text, used to pick split profiles."""

    TECHNICAL = "technical"
    NARRATIVE = "narrative"
    GENERAL = "general"


class ChunkQuality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StoreState(str, Enum):
    """Lifecycle of a named store inside one process."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


class RetrievalMode(str, Enum):
    SIMILARITY = "similarity"
    MMR = "mmr"
    ADVANCED = "advanced"


# ---------------------------------------------------------------------------
# Documents and chunks
# ---------------------------------------------------------------------------
class RawDocument(BaseModel):
    """Unsplit text read from one file (or one PDF page)."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="Full extracted text.")
    source: str = Field(description="File name the text came from.")
    page: int | None = Field(default=None, ge=1, description="1-based PDF page number.")


class ChunkMetadata(BaseModel):
    """Provenance and quality tags attached to every chunk."""

    model_config = ConfigDict(frozen=True)

    source: str
    chunk_index: int = Field(ge=0, description="0-based position within the document's split.")
    chunk_length: int = Field(ge=1)
    content_type: ContentType = ContentType.GENERAL
    quality: ChunkQuality = ChunkQuality.MEDIUM
    processed: bool = True
    page: int | None = None


class Chunk(BaseModel):
    """A retrieval-sized piece of a document.

    ``metadata.chunk_length`` always equals ``len(content)`` and
    ``content`` is never empty.
    """

    model_config = ConfigDict(frozen=True)

    content: str = Field(min_length=1)
    metadata: ChunkMetadata

    @model_validator(mode="after")
    def _length_matches_content(self) -> Chunk:
        if self.metadata.chunk_length != len(self.content):
            raise ValueError(
                f"chunk_length {self.metadata.chunk_length} != len(content) {len(self.content)}"
            )
        return self

    @property
    def chunk_id(self) -> str:
        """Deterministic id: identical chunks map to the same index row."""
        page = "" if self.metadata.page is None else str(self.metadata.page)
        key = f"{self.metadata.source}|{page}|{self.metadata.chunk_index}|{self.content}"
        return hashlib.sha256(key.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------
class StoreHandle(BaseModel):
    """Snapshot of a named store held by the vector store manager."""

    model_config = ConfigDict(frozen=True)

    name: str
    embedding_dimension: int = Field(gt=0)
    backing_path: str
    loaded: bool = True
    state: StoreState = StoreState.LOADED
    chunk_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)


class IngestionResult(BaseModel):
    """Statistics from one ingestion run into a store."""

    model_config = ConfigDict(frozen=True)

    store_name: str
    sources: list[str] = Field(default_factory=list)
    chunks_created: int = Field(default=0, ge=0)
    chunk_count: int = Field(default=0, ge=0, description="Chunks in the store afterwards.")
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Wall-clock seconds.")


# ---------------------------------------------------------------------------
# Retrieval and answers
# ---------------------------------------------------------------------------
class RetrievalResult(BaseModel):
    """A chunk returned by a retrieval strategy with its similarity score."""

    model_config = ConfigDict(frozen=True)

    chunk: Chunk
    score: float = Field(ge=0.0, le=1.0, description="Normalized similarity (1.0 = identical).")


class ChatExchange(BaseModel):
    """One question/answer pair in a conversation."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    store_id: str
    session_id: str
    question: str
    answer: str
    timestamp: datetime = Field(default_factory=_utcnow)


class ChatAnswer(BaseModel):
    """The model's answer and the chunks it was grounded on."""

    model_config = ConfigDict(frozen=True)

    answer: str
    source_chunks: list[RetrievalResult] = Field(default_factory=list)
