"""Pydantic data models shared across the ragchat pipeline."""

from ragchat.models.rag import (
    ChatAnswer,
    ChatExchange,
    Chunk,
    ChunkMetadata,
    ChunkQuality,
    ContentType,
    IngestionResult,
    RawDocument,
    RetrievalMode,
    RetrievalResult,
    StoreHandle,
    StoreState,
)

__all__ = [
    "ChatAnswer",
    "ChatExchange",
    "Chunk",
    "ChunkMetadata",
    "ChunkQuality",
    "ContentType",
    "IngestionResult",
    "RawDocument",
    "RetrievalMode",
    "RetrievalResult",
    "StoreHandle",
    "StoreState",
]
