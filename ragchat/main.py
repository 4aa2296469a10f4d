"""ragchat composition root.

Wires providers and services together via constructor injection.  Loads
configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and exposes:

- ``build_*`` factories, one per provider/service, for callers that want
  to assemble their own object graph;
- :func:`build_orchestrator`, which assembles the full graph for a tier;
- :func:`initialize_chat`, which builds the graph and prepares every store.
"""

from __future__ import annotations

from typing import Any

import structlog

from ragchat.config.loader import apply_config, load_config
from ragchat.config.settings import Settings
from ragchat.config.tiers import RAGConfig, resolve_config
from ragchat.interfaces.chat_history_provider import IChatHistoryProvider
from ragchat.interfaces.embedding_provider import IEmbeddingProvider
from ragchat.interfaces.llm_provider import ILLMProvider
from ragchat.providers.chat_history.memory_chat_history import InMemoryChatHistoryProvider
from ragchat.providers.chat_history.sqlite_chat_history import SQLiteChatHistoryProvider
from ragchat.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from ragchat.providers.llm.openai_provider import OpenAILLMProvider
from ragchat.services.conversation import ConversationOrchestrator
from ragchat.services.ingestion.chunker import ChunkingEngine
from ragchat.services.ingestion.document_loader import DocumentLoader
from ragchat.services.ingestion.ingestion_service import IngestionService
from ragchat.services.retriever import AdaptiveRetriever
from ragchat.services.vector_store_manager import VectorStoreManager
from ragchat.utils.errors import ConfigurationError
from ragchat.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider factories
# ---------------------------------------------------------------------------


def build_rag_config(app_settings: Settings, config: dict[str, Any] | None = None) -> RAGConfig:
    """Resolve the tier named by ``RAG_TIER``; ``custom`` reads ``rag.custom`` from *config*."""
    custom = ((config or {}).get("rag") or {}).get("custom")
    return resolve_config(app_settings.rag_tier, custom=custom)


def build_embedding_provider(app_settings: Settings, rag_config: RAGConfig) -> IEmbeddingProvider:
    """Build the embedding provider for the tier's embedding model.

    Raises ``ConfigurationError`` when no API key is configured.
    """
    if not app_settings.openai_api_key:
        raise ConfigurationError(
            message="OPENAI_API_KEY is required for embeddings",
            provider_name="openai_embedding",
        )
    return OpenAIEmbeddingProvider(settings=app_settings, embedding_config=rag_config.embeddings)


def build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Build the chat model provider.  Raises ``ConfigurationError`` without an API key."""
    if not app_settings.openai_api_key:
        raise ConfigurationError(
            message="OPENAI_API_KEY is required for the chat model",
            provider_name="openai",
        )
    return OpenAILLMProvider(settings=app_settings)


def build_chat_history_provider(app_settings: Settings) -> IChatHistoryProvider:
    """Select the chat-history backend named by ``CHAT_HISTORY_BACKEND``."""
    backend = app_settings.chat_history_backend.lower()
    if backend == "sqlite":
        return SQLiteChatHistoryProvider(db_path=app_settings.chat_history_db_path)
    if backend == "memory":
        return InMemoryChatHistoryProvider()
    raise ConfigurationError(
        message=f"Unknown chat history backend '{app_settings.chat_history_backend}'; "
        "expected 'sqlite' or 'memory'"
    )


def build_store_manager(
    app_settings: Settings,
    rag_config: RAGConfig,
    embedding_provider: IEmbeddingProvider,
) -> VectorStoreManager:
    return VectorStoreManager(
        embedding_provider=embedding_provider,
        base_path=app_settings.vectorstore_dir,
        batch_size=rag_config.embeddings.batch_size,
        max_attempts=app_settings.embedding_max_retries,
        retry_base_delay=app_settings.embedding_retry_base_delay,
    )


# ---------------------------------------------------------------------------
# Full assembly
# ---------------------------------------------------------------------------


def build_orchestrator(
    app_settings: Settings | None = None,
    config: dict[str, Any] | None = None,
    embedding_provider: IEmbeddingProvider | None = None,
    llm: ILLMProvider | None = None,
    history: IChatHistoryProvider | None = None,
) -> ConversationOrchestrator:
    """Assemble every provider and service for the configured tier.

    Providers passed explicitly are used as-is (handy for tests and for
    OpenAI-compatible backends built elsewhere); the rest are built from
    *app_settings*.  Paths, tier and history values come from *config*
    (``config/config.yaml`` merged with the environment when omitted).
    """
    app_settings = app_settings or Settings()
    if config is None:
        config = load_config(settings=app_settings)
    app_settings = apply_config(app_settings, config)

    rag_config = build_rag_config(app_settings, config)
    embedding_provider = embedding_provider or build_embedding_provider(app_settings, rag_config)
    llm = llm or build_llm_provider(app_settings)
    history = history or build_chat_history_provider(app_settings)

    store_manager = build_store_manager(app_settings, rag_config, embedding_provider)
    loader = DocumentLoader(app_settings.docs_dir)
    ingestion = IngestionService(loader, ChunkingEngine(), store_manager)
    retriever = AdaptiveRetriever(store_manager, max_k=app_settings.retrieval_max_k)

    _logger.info(
        "orchestrator_built",
        tier=app_settings.rag_tier,
        embedding_model=rag_config.embeddings.model,
        chat_model=rag_config.model.name,
        vectorstore_dir=app_settings.vectorstore_dir,
        history_backend=app_settings.chat_history_backend,
    )
    return ConversationOrchestrator(
        retriever=retriever,
        store_manager=store_manager,
        llm=llm,
        history=history,
        ingestion=ingestion,
        loader=loader,
        combined_store_name=app_settings.combined_store_name,
        default_config=rag_config,
        custom_tier=((config.get("rag") or {}).get("custom")),
        max_history_exchanges=app_settings.max_history_exchanges,
        max_context_chars=app_settings.max_context_chars,
    )


async def initialize_chat(
    app_settings: Settings | None = None,
    config: dict[str, Any] | None = None,
    **providers: Any,
) -> ConversationOrchestrator:
    """Configure logging, build the orchestrator and prepare every store."""
    app_settings = app_settings or Settings()
    if config is None:
        config = load_config(settings=app_settings)
    app_settings = apply_config(app_settings, config)
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )
    orchestrator = build_orchestrator(app_settings, config, **providers)
    await orchestrator.initialize()
    return orchestrator
