"""Adaptive retrieval over a named vector store.

Three strategies are available:

- **similarity** -- plain top-k nearest neighbours.
- **mmr** -- maximal marginal relevance: a ``k * 3`` candidate pool is
  re-ranked to balance relevance against redundancy using the tier's
  ``mmr_lambda``.
- **advanced** -- oversample (``max(k * 3, 10)`` candidates), drop anything
  scoring below the tier's ``score_threshold``, sort descending and keep
  ``k``.  If the scored search raises, or returns no candidates at all, the
  retriever falls back to unfiltered top-k similarity.  An error in the
  fallback itself propagates.

The threshold keeps low-relevance text away from the model; the fallback
keeps answers available when the scored path is flaky.  ``k`` is clamped
to a hard ceiling in every mode.
"""

from __future__ import annotations

import structlog

from ragchat.config.tiers import RAGConfig, SearchType
from ragchat.models.rag import Chunk, RetrievalMode, RetrievalResult
from ragchat.services.vector_store_manager import VectorStoreManager

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_MAX_K = 20
MMR_FETCH_MULTIPLIER = 3
ADVANCED_MIN_FETCH_K = 10


def _to_results(pairs: list[tuple[Chunk, float]]) -> list[RetrievalResult]:
    return [RetrievalResult(chunk=chunk, score=score) for chunk, score in pairs]


def mode_for_config(config: RAGConfig) -> RetrievalMode:
    """The retrieval mode a tier asks for when the caller does not pick one."""
    if config.retrieval.use_advanced:
        return RetrievalMode.ADVANCED
    if config.retrieval.search_type is SearchType.MMR:
        return RetrievalMode.MMR
    return RetrievalMode.SIMILARITY


class AdaptiveRetriever:
    """Selects and runs a retrieval strategy against a store.

    Parameters
    ----------
    store_manager:
        Resolves store names to loaded indexes.
    max_k:
        Hard ceiling applied to every requested ``k``.
    """

    def __init__(self, store_manager: VectorStoreManager, max_k: int = DEFAULT_MAX_K) -> None:
        self._store_manager = store_manager
        self._max_k = max(1, max_k)

    def clamp_k(self, k: int) -> int:
        return max(1, min(k, self._max_k))

    async def retrieve(
        self,
        store_name: str,
        query: str,
        k: int,
        mode: RetrievalMode,
        config: RAGConfig,
    ) -> list[RetrievalResult]:
        """Return up to ``k`` results from *store_name* for *query*.

        Raises
        ------
        StoreNotFoundError
            The store is neither loaded nor persisted.
        """
        await self._store_manager.load_or_create(store_name)
        index = self._store_manager.index(store_name)
        effective_k = self.clamp_k(k)

        if mode is RetrievalMode.SIMILARITY:
            results = _to_results(await index.similarity_search_with_score(query, effective_k))
        elif mode is RetrievalMode.MMR:
            results = _to_results(
                await index.max_marginal_relevance_search(
                    query,
                    k=effective_k,
                    fetch_k=effective_k * MMR_FETCH_MULTIPLIER,
                    lambda_mult=config.retrieval.mmr_lambda,
                )
            )
        else:
            results = await self._advanced(store_name, query, effective_k, config)

        logger.info(
            "retrieval_complete",
            store=store_name,
            mode=mode.value,
            requested_k=k,
            k=effective_k,
            results=len(results),
            top_score=results[0].score if results else None,
        )
        return results

    async def _advanced(
        self,
        store_name: str,
        query: str,
        k: int,
        config: RAGConfig,
    ) -> list[RetrievalResult]:
        index = self._store_manager.index(store_name)
        threshold = config.retrieval.score_threshold
        fetch_k = max(k * MMR_FETCH_MULTIPLIER, ADVANCED_MIN_FETCH_K)

        try:
            candidates = await index.similarity_search_with_score(query, fetch_k)
        except Exception as exc:
            logger.warning(
                "advanced_retrieval_fallback",
                store=store_name,
                reason="scored_search_failed",
                error=str(exc),
            )
            return await self._fallback(store_name, query, k)

        if not candidates:
            logger.info("advanced_retrieval_fallback", store=store_name, reason="no_candidates")
            return await self._fallback(store_name, query, k)

        kept = [pair for pair in candidates if pair[1] >= threshold]
        # sorted() is stable: equal scores keep index order.
        kept = sorted(kept, key=lambda pair: pair[1], reverse=True)[:k]
        logger.debug(
            "advanced_retrieval_filtered",
            store=store_name,
            candidates=len(candidates),
            kept=len(kept),
            threshold=threshold,
        )
        return _to_results(kept)

    async def _fallback(self, store_name: str, query: str, k: int) -> list[RetrievalResult]:
        index = self._store_manager.index(store_name)
        return _to_results(await index.similarity_search_with_score(query, k))
