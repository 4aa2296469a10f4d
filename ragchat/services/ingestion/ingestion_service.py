"""Orchestrator for document ingestion: load -> chunk -> embed -> store.

The :class:`IngestionService` coordinates three collaborators (document
loader, chunking engine, vector store manager) without any of them knowing
about each other.  Ingestion is additive: documents are appended to an
existing store, and chunks the store already holds are skipped, so running
the same ingestion twice leaves the store unchanged.
"""

from __future__ import annotations

import time

import structlog

from ragchat.config.tiers import ChunkingConfig
from ragchat.models.rag import Chunk, IngestionResult, StoreHandle
from ragchat.services.ingestion.chunker import ChunkingEngine
from ragchat.services.ingestion.document_loader import DocumentLoader
from ragchat.services.vector_store_manager import VectorStoreManager, user_store_name

logger = structlog.get_logger(logger_name=__name__)


def store_name_for(document_name: str) -> str:
    """Individual store name for a document: its file name without suffix."""
    stem, dot, _ = document_name.rpartition(".")
    return stem if dot and stem else document_name


class IngestionService:
    """Loads, chunks and indexes documents into named stores.

    Parameters
    ----------
    loader:
        Reads ``.txt`` / ``.pdf`` files from the docs directory.
    chunker:
        Splits raw documents into chunks.
    store_manager:
        Owns store creation, loading and mutation.
    """

    def __init__(
        self,
        loader: DocumentLoader,
        chunker: ChunkingEngine,
        store_manager: VectorStoreManager,
    ) -> None:
        self._loader = loader
        self._chunker = chunker
        self._store_manager = store_manager

    async def ingest_documents(
        self,
        store_name: str,
        document_names: list[str],
        config: ChunkingConfig | None = None,
    ) -> IngestionResult:
        """Chunk *document_names* and add them to *store_name*, creating it if new."""
        start = time.monotonic()
        documents = self._loader.load_documents(document_names)
        chunks = self._chunker.split(documents, config)
        handle = await self.add_chunks(store_name, chunks)

        result = IngestionResult(
            store_name=store_name,
            sources=list(document_names),
            chunks_created=len(chunks),
            chunk_count=handle.chunk_count,
            ingestion_time=round(time.monotonic() - start, 3),
        )
        logger.info(
            "ingestion_complete",
            store=store_name,
            sources=len(document_names),
            chunks_created=result.chunks_created,
            chunk_count=result.chunk_count,
            seconds=result.ingestion_time,
        )
        return result

    async def ingest_document(
        self,
        document_name: str,
        config: ChunkingConfig | None = None,
        store_name: str | None = None,
    ) -> IngestionResult:
        """Ingest one document into *store_name* (default: its own store)."""
        return await self.ingest_documents(
            store_name or store_name_for(document_name), [document_name], config
        )

    async def ingest_user_document(
        self,
        user_id: str,
        document_name: str,
        config: ChunkingConfig | None = None,
    ) -> IngestionResult:
        """Ingest one document into *user_id*'s private store for it."""
        return await self.ingest_documents(user_store_name(user_id, document_name), [document_name], config)

    async def build_combined(
        self,
        store_name: str,
        config: ChunkingConfig | None = None,
    ) -> StoreHandle:
        """Load the combined store, or build it from every available document.

        With no documents available the store is created empty.
        """
        if self._store_manager.exists(store_name):
            return await self._store_manager.load_or_create(store_name)

        names = self._loader.list_available_documents()
        chunks = self._chunker.split(self._loader.load_documents(names), config)
        logger.info("combined_store_build", store=store_name, documents=len(names), chunks=len(chunks))
        return await self.add_chunks(store_name, chunks)

    async def add_chunks(self, store_name: str, chunks: list[Chunk]) -> StoreHandle:
        """Add *chunks* to *store_name*, creating the store when it does not exist.

        Building a new store and then adding to it is safe when two callers
        race on the same new name: whichever build wins, the other caller's
        chunks are appended and already-present chunks are skipped.
        """
        await self._store_manager.load_or_create(store_name, chunks)
        return await self._store_manager.add_documents(store_name, chunks)
