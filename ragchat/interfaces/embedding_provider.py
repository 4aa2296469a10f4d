"""Abstract base class for text-embedding service providers.

Defines the request/response contract for turning text into vectors.
The embedding algorithm itself lives behind this interface; the rest of
the pipeline only ever sees lists of floats of a fixed dimension.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OpenAIEmbeddingProvider (ragchat/providers/embedding/)
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the RAG pipeline.

    Embeddings are consumed by the vector store manager for indexing and by
    :class:`~ragchat.interfaces.vector_index.IVectorIndex` implementations
    for query-time similarity search.
    """

    @abstractmethod
    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            Texts to embed.  Callers batch according to the active tier's
            ``batch_size``; implementations send one request per call.

        Returns
        -------
        list[list[float]]
            Vectors corresponding positionally to *texts*, each of length
            :meth:`get_dimension`.

        Raises
        ------
        ragchat.utils.errors.RateLimitError
            Provider throttled the request (retriable).
        ragchat.utils.errors.ProviderUnavailableError
            Provider unreachable or timed out (retriable).
        ragchat.utils.errors.ProviderError
            Any other failure (fatal).
        """

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        """Generate an embedding vector for a single query string."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Must stay constant for the provider's lifetime and match the
        dimension stored in every index it is used with.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
