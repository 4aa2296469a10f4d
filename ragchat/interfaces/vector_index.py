"""Abstract base class for one persisted vector index (one named store).

A vector index owns the embedded chunks of a single store.  It embeds
queries through the injected embedding provider, but document embeddings
are computed by the vector store manager and handed in ready-made so that
batching and retries live in one place.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ragchat.models.rag import Chunk


# Concrete implementation: ChromaVectorIndex (ragchat/providers/vector_store/)
class IVectorIndex(ABC):
    """Contract for a single store's nearest-neighbour index."""

    @abstractmethod
    async def add(self, chunks: list[Chunk], embeddings: list[list[float]]) -> int:
        """Upsert pre-embedded *chunks*; return the number written.

        Chunks are keyed by :attr:`Chunk.chunk_id`, so re-adding an
        identical chunk overwrites it instead of duplicating it.
        """

    @abstractmethod
    async def similarity_search_with_score(self, query: str, k: int) -> list[tuple[Chunk, float]]:
        """Return up to *k* ``(chunk, score)`` pairs, best first.

        Scores are normalized similarities in ``[0, 1]``.
        """

    @abstractmethod
    async def max_marginal_relevance_search(
        self,
        query: str,
        k: int,
        fetch_k: int,
        lambda_mult: float,
    ) -> list[tuple[Chunk, float]]:
        """Return up to *k* results chosen by maximal marginal relevance.

        Parameters
        ----------
        fetch_k:
            Candidate pool size drawn by plain similarity before re-ranking.
        lambda_mult:
            ``1.0`` ranks purely by relevance, ``0.0`` purely by diversity.
        """

    @abstractmethod
    def count(self) -> int:
        """Return the number of chunks stored."""

    @abstractmethod
    def get_dimension(self) -> int | None:
        """Return the stored vector dimension, or ``None`` for an empty index."""

    @abstractmethod
    def has_ids(self, ids: list[str]) -> set[str]:
        """Return the subset of *ids* already present in the index."""
