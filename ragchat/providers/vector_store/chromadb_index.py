"""ChromaDB vector index adapter.

Each named store is one ``chromadb.PersistentClient`` directory holding a
single cosine-distance collection.  Embeddings are always computed outside
ChromaDB: document vectors arrive ready-made from the vector store manager
and query vectors come from the injected :class:`IEmbeddingProvider`.

Similarity is reported as ``clamp(1 - cosine_distance, 0, 1)``.  Maximal
marginal relevance re-ranking runs in numpy over the candidate vectors
ChromaDB returns.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

# Must be set before chromadb is imported; the Settings flag below covers
# versions that ignore the env var.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import numpy as np
import structlog

from ragchat.interfaces.embedding_provider import IEmbeddingProvider
from ragchat.interfaces.vector_index import IVectorIndex
from ragchat.models.rag import Chunk, ChunkMetadata, ChunkQuality, ContentType
from ragchat.utils.errors import ConfigurationError, IndexCorruptionError
from ragchat.utils.retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, call_with_retry

logger = structlog.get_logger(logger_name=__name__)

COLLECTION_NAME = "chunks"
SQLITE_FILENAME = "chroma.sqlite3"
_UPSERT_BATCH = 500


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that is never called.

    Passing it stops ChromaDB from loading its default ONNX model on
    collection creation; every vector is supplied explicitly.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("ragchat supplies pre-computed embeddings")

    def name(self) -> str:
        return "noop_precomputed"


def _open_collection(client: Any, create: bool) -> Any:
    getter = client.get_or_create_collection if create else client.get_collection
    kwargs: dict[str, Any] = {"name": COLLECTION_NAME}
    if create:
        kwargs["metadata"] = {"hnsw:space": "cosine"}
    # Collections persisted by another ChromaDB version may reject a
    # different embedding function; open them without one.
    try:
        return getter(embedding_function=_NoopEmbeddingFunction(), **kwargs)
    except ValueError:
        return getter(**kwargs)


def _similarity(distance: float) -> float:
    return max(0.0, min(1.0, 1.0 - float(distance)))


def maximal_marginal_relevance(
    query_vector: np.ndarray,
    candidate_vectors: np.ndarray,
    k: int,
    lambda_mult: float,
) -> list[int]:
    """Greedy MMR selection; returns candidate row indices in pick order."""
    if k <= 0 or candidate_vectors.size == 0:
        return []

    def _normalize(matrix: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
        norms[norms == 0] = 1.0
        return matrix / norms

    candidates = _normalize(np.atleast_2d(candidate_vectors).astype(float))
    query = _normalize(np.atleast_2d(query_vector).astype(float))[0]

    query_sim = candidates @ query
    pairwise = candidates @ candidates.T

    selected = [int(np.argmax(query_sim))]
    while len(selected) < min(k, len(candidates)):
        remaining = [i for i in range(len(candidates)) if i not in selected]
        redundancy = pairwise[np.ix_(remaining, selected)].max(axis=1)
        scores = lambda_mult * query_sim[remaining] - (1.0 - lambda_mult) * redundancy
        selected.append(remaining[int(np.argmax(scores))])
    return selected


class ChromaVectorIndex(IVectorIndex):
    """One store's vectors, persisted in its own ChromaDB directory.

    Use :meth:`open` for an existing store and :meth:`create` for a new one.
    """

    def __init__(
        self,
        persist_directory: Path,
        collection: Any,
        embedding_provider: IEmbeddingProvider,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
    ) -> None:
        self._persist_directory = persist_directory
        self._collection = collection
        self._embedding_provider = embedding_provider
        self._max_attempts = max_attempts
        self._retry_base_delay = retry_base_delay

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        persist_directory: str | Path,
        embedding_provider: IEmbeddingProvider,
        **retry_kwargs: Any,
    ) -> ChromaVectorIndex:
        """Create (or reopen) the store directory and its collection."""
        path = Path(persist_directory)
        path.mkdir(parents=True, exist_ok=True)
        client = cls._client(path)
        collection = _open_collection(client, create=True)
        logger.info("chroma_index_created", path=str(path))
        return cls(path, collection, embedding_provider, **retry_kwargs)

    @classmethod
    def open(
        cls,
        persist_directory: str | Path,
        embedding_provider: IEmbeddingProvider,
        **retry_kwargs: Any,
    ) -> ChromaVectorIndex:
        """Open an existing store directory.

        Raises
        ------
        IndexCorruptionError
            The directory has no ChromaDB database or its collection cannot
            be opened.
        ConfigurationError
            Stored vectors have a different dimension than the provider's.
        """
        path = Path(persist_directory)
        if not (path / SQLITE_FILENAME).is_file():
            raise IndexCorruptionError(
                message=f"No ChromaDB database in {path}",
                provider_name="chromadb",
            )
        try:
            client = cls._client(path)
            collection = _open_collection(client, create=False)
        except Exception as exc:
            raise IndexCorruptionError(
                message=f"Cannot open ChromaDB store at {path}: {exc}",
                provider_name="chromadb",
            ) from exc

        index = cls(path, collection, embedding_provider, **retry_kwargs)
        index._validate_embedding_dimensions()
        return index

    @staticmethod
    def _client(path: Path) -> Any:
        return chromadb.PersistentClient(
            path=str(path),
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )

    def _validate_embedding_dimensions(self) -> None:
        """Fail fast when stored vectors cannot be compared with new queries."""
        stored_dim = self.get_dimension()
        if stored_dim is None:
            return
        expected_dim = self._embedding_provider.get_dimension()
        if stored_dim != expected_dim:
            logger.error(
                "embedding_dimension_mismatch",
                path=str(self._persist_directory),
                stored_dim=stored_dim,
                expected_dim=expected_dim,
            )
            raise ConfigurationError(
                message=(
                    f"Store at {self._persist_directory} holds {stored_dim}-dim vectors but "
                    f"'{self._embedding_provider.get_provider_name()}' produces "
                    f"{expected_dim}-dim vectors"
                ),
                provider_name="chromadb",
            )

    # ------------------------------------------------------------------
    # IVectorIndex implementation
    # ------------------------------------------------------------------

    async def add(self, chunks: list[Chunk], embeddings: list[list[float]]) -> int:
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"chunks and embeddings length mismatch: {len(chunks)} != {len(embeddings)}"
            )

        # ChromaDB rejects duplicate ids inside one upsert; last one wins.
        rows: dict[str, tuple[Chunk, list[float]]] = {}
        for chunk, vector in zip(chunks, embeddings, strict=True):
            rows[chunk.chunk_id] = (chunk, vector)
        if not rows:
            return 0

        items = list(rows.items())
        for start in range(0, len(items), _UPSERT_BATCH):
            batch = items[start : start + _UPSERT_BATCH]
            self._collection.upsert(
                ids=[chunk_id for chunk_id, _ in batch],
                embeddings=[vector for _, (_, vector) in batch],
                documents=[chunk.content for _, (chunk, _) in batch],
                metadatas=[self._chunk_to_metadata(chunk) for _, (chunk, _) in batch],
            )

        logger.info("chroma_upsert", path=str(self._persist_directory), count=len(items))
        return len(items)

    async def similarity_search_with_score(self, query: str, k: int) -> list[tuple[Chunk, float]]:
        n_results = min(k, self.count())
        if n_results <= 0:
            return []

        query_vector = await self._embed_query(query)
        results = self._collection.query(
            query_embeddings=[query_vector],
            n_results=n_results,
            include=["documents", "metadatas", "distances"],
        )
        documents = results["documents"][0] if results["documents"] else []
        metadatas = results["metadatas"][0] if results["metadatas"] else [{}] * len(documents)
        distances = results["distances"][0] if results["distances"] else [1.0] * len(documents)

        return [
            (self._metadata_to_chunk(meta, doc), _similarity(dist))
            for doc, meta, dist in zip(documents, metadatas, distances, strict=True)
        ]

    async def max_marginal_relevance_search(
        self,
        query: str,
        k: int,
        fetch_k: int,
        lambda_mult: float,
    ) -> list[tuple[Chunk, float]]:
        n_results = min(max(fetch_k, k), self.count())
        if n_results <= 0 or k <= 0:
            return []

        query_vector = await self._embed_query(query)
        results = self._collection.query(
            query_embeddings=[query_vector],
            n_results=n_results,
            include=["documents", "metadatas", "distances", "embeddings"],
        )
        documents = results["documents"][0]
        metadatas = results["metadatas"][0]
        distances = results["distances"][0]
        candidate_vectors = np.asarray(results["embeddings"][0], dtype=float)

        picked = maximal_marginal_relevance(
            np.asarray(query_vector, dtype=float), candidate_vectors, k, lambda_mult
        )
        return [
            (self._metadata_to_chunk(metadatas[i], documents[i]), _similarity(distances[i]))
            for i in picked
        ]

    def count(self) -> int:
        return self._collection.count()

    def get_dimension(self) -> int | None:
        if self.count() == 0:
            return None
        sample = self._collection.peek(limit=1)
        embeddings = sample.get("embeddings") if sample else None
        if embeddings is None or len(embeddings) == 0:
            return None
        return len(embeddings[0])

    def has_ids(self, ids: list[str]) -> set[str]:
        if not ids:
            return set()
        found = self._collection.get(ids=ids, include=["metadatas"])
        return set(found["ids"])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _embed_query(self, query: str) -> list[float]:
        return await call_with_retry(
            lambda: self._embedding_provider.embed_query(query),
            max_attempts=self._max_attempts,
            base_delay=self._retry_base_delay,
            operation_name="embed_query",
            provider_name=self._embedding_provider.get_provider_name(),
        )

    @staticmethod
    def _chunk_to_metadata(chunk: Chunk) -> dict[str, Any]:
        meta = chunk.metadata
        # ChromaDB metadata values must be scalars; None is omitted.
        flat: dict[str, Any] = {
            "source": meta.source,
            "chunk_index": meta.chunk_index,
            "chunk_length": meta.chunk_length,
            "content_type": meta.content_type.value,
            "quality": meta.quality.value,
            "processed": meta.processed,
        }
        if meta.page is not None:
            flat["page"] = meta.page
        return flat

    @staticmethod
    def _metadata_to_chunk(meta: dict[str, Any] | None, document: str) -> Chunk:
        meta = meta or {}
        return Chunk(
            content=document,
            metadata=ChunkMetadata(
                source=str(meta.get("source", "")),
                chunk_index=int(meta.get("chunk_index", 0)),
                chunk_length=len(document),
                content_type=ContentType(meta.get("content_type", ContentType.GENERAL.value)),
                quality=ChunkQuality(meta.get("quality", ChunkQuality.MEDIUM.value)),
                processed=bool(meta.get("processed", True)),
                page=meta.get("page"),
            ),
        )
