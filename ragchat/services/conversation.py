"""Conversation orchestration: retrieve, consult history, ask the model, log.

:class:`ConversationOrchestrator` is a thin, stateless-per-call coordinator:

  1. RESOLVE   -- make sure the target store is loaded.  The combined store
                  is created empty on demand; any other store must exist.
  2. RETRIEVE  -- run the adaptive retriever with the tier's parameters.
  3. HISTORY   -- fetch the last few exchanges of this conversation.
  4. PROMPT    -- build a bounded message list: system prompt carrying the
                  retrieved context, prior exchanges, the new question.
  5. ANSWER    -- invoke the model with the tier's sampling parameters.
  6. LOG       -- append the exchange to the chat history.

No error from a lower layer is swallowed: a missing store, an exhausted
provider or a model failure reaches the caller unchanged.

:meth:`initialize` prepares stores at process start: it builds or loads
the combined store from every available document, then loads each
document's individual store or ingests the document if it is new.
"""

from __future__ import annotations

from typing import Any

import structlog

from ragchat.config.tiers import DEFAULT_TIER, RAGConfig, resolve_config
from ragchat.interfaces.chat_history_provider import IChatHistoryProvider
from ragchat.interfaces.llm_provider import ILLMProvider, LLMMessage
from ragchat.models.rag import ChatAnswer, ChatExchange, RetrievalMode, RetrievalResult
from ragchat.services.ingestion.document_loader import DocumentLoader
from ragchat.services.ingestion.ingestion_service import IngestionService, store_name_for
from ragchat.services.retriever import AdaptiveRetriever, mode_for_config
from ragchat.services.vector_store_manager import VectorStoreManager
from ragchat.utils.logging import conversation_context, get_logger

logger: structlog.BoundLogger = get_logger(__name__)

DEFAULT_USER = "default"
DEFAULT_SESSION = "default"


class ConversationOrchestrator:
    """Answers questions against a named store and records the conversation.

    Parameters
    ----------
    retriever:
        Adaptive retriever over the store manager.
    store_manager:
        Used to create the combined store on demand.
    llm:
        Chat model provider.
    history:
        Chat-history backend keyed by ``(user_id, store_id, session_id)``.
    ingestion:
        Used by :meth:`initialize` to build and extend stores.
    loader:
        Lists the documents :meth:`initialize` should index.
    default_config:
        Tier used when a call does not pass one.  Defaults to the
        conservative ``default`` tier.
    custom_tier:
        ``rag.custom`` config section, used when a caller asks for the
        ``custom`` tier by name.
    """

    _SYSTEM_PROMPT = (
        "You are a helpful assistant that answers questions using only the retrieved "
        "context below.\n\n"
        "Guidelines:\n"
        "- Answer only with information found in the context.\n"
        "- If the context does not contain the answer, say that you don't know.\n"
        "- Mention which part of the context (its source) supports your answer.\n"
        "- Do not add outside information or speculate.\n"
        "- Keep the answer concise.\n\n"
        "Context:\n{context}"
    )

    _EMPTY_CONTEXT = "(no relevant context was found)"

    def __init__(
        self,
        retriever: AdaptiveRetriever,
        store_manager: VectorStoreManager,
        llm: ILLMProvider,
        history: IChatHistoryProvider,
        ingestion: IngestionService,
        loader: DocumentLoader,
        combined_store_name: str = "combined",
        default_config: RAGConfig | None = None,
        custom_tier: dict[str, Any] | None = None,
        max_history_exchanges: int = 6,
        max_context_chars: int = 12000,
    ) -> None:
        self._retriever = retriever
        self._store_manager = store_manager
        self._llm = llm
        self._history = history
        self._ingestion = ingestion
        self._loader = loader
        self._combined_store_name = combined_store_name
        self._default_config = default_config or resolve_config(DEFAULT_TIER)
        self._custom_tier = custom_tier
        self._max_history_exchanges = max_history_exchanges
        self._max_context_chars = max_context_chars

    @property
    def combined_store_name(self) -> str:
        return self._combined_store_name

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ask(
        self,
        query: str,
        *,
        user_id: str = DEFAULT_USER,
        session_id: str = DEFAULT_SESSION,
        store_name: str | None = None,
        config: RAGConfig | str | None = None,
        retrieval_mode: RetrievalMode | None = None,
        k: int | None = None,
    ) -> ChatAnswer:
        """Answer *query* against *store_name* and log the exchange.

        Parameters
        ----------
        store_name:
            Target store; defaults to the combined store.
        config:
            A :class:`RAGConfig`, a tier name, or ``None`` for the default tier.
        retrieval_mode:
            Overrides the tier's mode (``advanced`` for the default tier).
        k:
            Overrides the tier's ``k`` (still clamped by the retriever).

        Raises
        ------
        StoreNotFoundError
            A non-combined store that does not exist.
        ProviderError / LLMError
            Embedding or model failures, propagated unchanged.
        """
        store = store_name or self._combined_store_name
        rag_config = self._resolve_config(config)
        mode = retrieval_mode or mode_for_config(rag_config)

        with conversation_context(user_id=user_id, store=store, session_id=session_id):
            if store == self._combined_store_name:
                await self._store_manager.load_or_create(store, [])

            results = await self._retriever.retrieve(
                store, query, k or rag_config.retrieval.k, mode, rag_config
            )
            history = await self._history.get_history(
                user_id, store, session_id, limit=self._max_history_exchanges
            )
            messages = self._build_messages(query, results, history)

            response = await self._llm.invoke(messages, rag_config.model)

            await self._history.append(
                ChatExchange(
                    user_id=user_id,
                    store_id=store,
                    session_id=session_id,
                    question=query,
                    answer=response.content,
                )
            )
            logger.info(
                "conversation_answered",
                mode=mode.value,
                sources=len(results),
                history=len(history),
                model=response.model,
            )
        return ChatAnswer(answer=response.content, source_chunks=results)

    async def initialize(self, config: RAGConfig | str | None = None) -> list[str]:
        """Prepare the combined store and one store per available document.

        Existing stores are loaded; documents without a store are ingested
        into their own store and appended to the combined store.

        Returns
        -------
        list[str]
            Names of the stores loaded, combined store first.
        """
        rag_config = self._resolve_config(config)
        await self._history.initialize()
        await self._ingestion.build_combined(self._combined_store_name, rag_config.chunking)

        loaded = [self._combined_store_name]
        for document in self._loader.list_available_documents():
            name = store_name_for(document)
            if name == self._combined_store_name:
                logger.warning("document_store_name_reserved", document=document)
                continue
            if self._store_manager.exists(name):
                await self._store_manager.load_or_create(name)
            else:
                await self._ingestion.ingest_document(document, rag_config.chunking, store_name=name)
                await self._ingestion.ingest_document(
                    document, rag_config.chunking, store_name=self._combined_store_name
                )
            loaded.append(name)

        logger.info("conversation_initialized", stores=loaded)
        return loaded

    async def list_users(self) -> list[str]:
        return await self._history.list_users()

    async def list_user_stores(self, user_id: str) -> list[str]:
        return await self._history.list_stores(user_id)

    async def list_sessions(self, user_id: str, store_name: str) -> list[str]:
        return await self._history.list_sessions(user_id, store_name)

    async def clear_history(self, user_id: str, store_name: str, session_id: str) -> int:
        return await self._history.clear(user_id, store_name, session_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _resolve_config(self, config: RAGConfig | str | None) -> RAGConfig:
        if config is None:
            return self._default_config
        if isinstance(config, RAGConfig):
            return config
        return resolve_config(config, custom=self._custom_tier)

    def _build_messages(
        self,
        query: str,
        results: list[RetrievalResult],
        history: list[ChatExchange],
    ) -> list[LLMMessage]:
        context = self._format_context(results) or self._EMPTY_CONTEXT
        messages = [LLMMessage(role="system", content=self._SYSTEM_PROMPT.format(context=context))]
        for exchange in history:
            messages.append(LLMMessage(role="user", content=exchange.question))
            messages.append(LLMMessage(role="assistant", content=exchange.answer))
        messages.append(LLMMessage(role="user", content=query))
        return messages

    def _format_context(self, results: list[RetrievalResult]) -> str:
        """Join retrieved passages, best first, within ``max_context_chars``."""
        blocks: list[str] = []
        used = 0
        for result in results:
            meta = result.chunk.metadata
            label = meta.source if meta.page is None else f"{meta.source}, page {meta.page}"
            block = f"[Source: {label}]\n{result.chunk.content}"
            remaining = self._max_context_chars - used
            if remaining <= 0:
                break
            if len(block) > remaining:
                # Only the best passage may be cut; later ones are dropped whole.
                if blocks:
                    break
                block = block[:remaining]
            blocks.append(block)
            used += len(block) + 2
        return "\n\n".join(blocks)
