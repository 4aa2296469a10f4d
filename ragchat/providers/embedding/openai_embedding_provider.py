"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Model, dimension and batch size come from the active tier's
:class:`~ragchat.config.tiers.EmbeddingConfig`.  The SDK's built-in retries
are switched off: the vector store manager owns retrying, and this adapter
only translates SDK failures into retriable or fatal ragchat errors.
"""

from __future__ import annotations

import openai
import structlog

from ragchat.config.settings import Settings
from ragchat.config.tiers import EmbeddingConfig
from ragchat.interfaces.embedding_provider import IEmbeddingProvider
from ragchat.utils.errors import ProviderError, ProviderUnavailableError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

# Models that accept the ``dimensions`` request parameter.
_SHORTENABLE_PREFIX = "text-embedding-3"


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    When ``openai_base_url`` is configured the client points at that URL,
    which lets the same adapter serve any OpenAI-compatible backend.
    """

    def __init__(self, settings: Settings, embedding_config: EmbeddingConfig) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {"api_key": self._api_key, "max_retries": 0}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = embedding_config.model
        self._dimension = embedding_config.dimensions
        self._batch_size = embedding_config.batch_size
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, splitting into ``batch_size`` requests if needed."""
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            all_embeddings.extend(await self._create(batch))
        return all_embeddings

    async def embed_query(self, text: str) -> list[float]:
        result = await self._create([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _create(self, batch: list[str]) -> list[list[float]]:
        kwargs: dict = {"input": batch, "model": self._model}
        if self._model.startswith(_SHORTENABLE_PREFIX):
            kwargs["dimensions"] = self._dimension

        try:
            response = await self._client.embeddings.create(**kwargs)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{self._provider_label} rate limited: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except (openai.APIConnectionError, openai.InternalServerError) as exc:
            # APITimeoutError is a subclass of APIConnectionError.
            raise ProviderUnavailableError(
                message=f"{self._provider_label} unavailable: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise ProviderError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch_size=len(batch),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return [item.embedding for item in response.data]
