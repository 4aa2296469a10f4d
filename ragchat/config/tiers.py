"""Pre-tuned RAG configuration tiers.

A :class:`RAGConfig` bundles every knob the pipeline exposes: embedding
model and batch size, chunking strategy and sizes, retrieval mode and
thresholds, and the answering model's sampling parameters.

Three canonical tiers form a lattice from precise to permissive:

    high_quality  ->  balanced  ->  fast

Moving right, temperature and chunk size never decrease while the score
threshold and embedding dimension never increase.

Callers pick a tier by name.  ``default`` is the conservative
``high_quality`` tier; ``custom`` starts from ``balanced`` and applies the
``rag.custom`` section of ``config/config.yaml``.
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ragchat.config.loader import deep_merge
from ragchat.utils.errors import ConfigurationError


class ChunkingStrategy(str, Enum):
    """``standard`` uses the configured sizes; ``semantic`` keys sizes by content type."""

    STANDARD = "standard"
    SEMANTIC = "semantic"


class SearchType(str, Enum):
    """Retrieval algorithm used when advanced retrieval is disabled."""

    SIMILARITY = "similarity"
    MMR = "mmr"


class EmbeddingConfig(BaseModel):
    """Embedding model selection and request batching."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(description="Embedding model name, e.g. text-embedding-3-large.")
    dimensions: int = Field(gt=0, description="Vector dimensionality requested from the model.")
    batch_size: int = Field(gt=0, description="Texts per embedding request.")


class ChunkingConfig(BaseModel):
    """How documents are split before embedding."""

    model_config = ConfigDict(frozen=True)

    strategy: ChunkingStrategy = Field(default=ChunkingStrategy.STANDARD)
    chunk_size: int = Field(gt=0, description="Maximum characters per chunk.")
    chunk_overlap: int = Field(ge=0, description="Characters carried over between chunks.")
    min_chunk_size: int = Field(default=30, ge=0, description="Shorter chunks are dropped.")

    @model_validator(mode="after")
    def _overlap_below_size(self) -> ChunkingConfig:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )
        return self


class RetrievalConfig(BaseModel):
    """Retrieval mode and scoring thresholds."""

    model_config = ConfigDict(frozen=True)

    use_advanced: bool = Field(default=True, description="Threshold-filtered retrieval with fallback.")
    k: int = Field(ge=1, description="Number of chunks handed to the model.")
    score_threshold: float = Field(ge=0.0, le=1.0)
    search_type: SearchType = Field(default=SearchType.SIMILARITY)
    mmr_lambda: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="MMR trade-off: 1.0 is pure relevance, 0.0 is pure diversity.",
    )


class ModelConfig(BaseModel):
    """Sampling parameters for the answering model."""

    model_config = ConfigDict(frozen=True)

    name: str
    temperature: float = Field(ge=0.0, le=2.0)
    max_tokens: int = Field(gt=0)
    top_p: float = Field(gt=0.0, le=1.0)


class RAGConfig(BaseModel):
    """Complete pipeline configuration for one tier."""

    model_config = ConfigDict(frozen=True)

    embeddings: EmbeddingConfig
    chunking: ChunkingConfig
    retrieval: RetrievalConfig
    model: ModelConfig


HIGH_QUALITY = RAGConfig(
    embeddings=EmbeddingConfig(model="text-embedding-3-large", dimensions=3072, batch_size=512),
    chunking=ChunkingConfig(
        strategy=ChunkingStrategy.SEMANTIC, chunk_size=600, chunk_overlap=100, min_chunk_size=50
    ),
    retrieval=RetrievalConfig(
        use_advanced=True, k=6, score_threshold=0.7, search_type=SearchType.MMR, mmr_lambda=0.25
    ),
    model=ModelConfig(name="gpt-4-turbo", temperature=0.0, max_tokens=1000, top_p=0.5),
)

BALANCED = RAGConfig(
    embeddings=EmbeddingConfig(model="text-embedding-3-small", dimensions=1536, batch_size=1024),
    chunking=ChunkingConfig(
        strategy=ChunkingStrategy.STANDARD, chunk_size=800, chunk_overlap=150, min_chunk_size=50
    ),
    retrieval=RetrievalConfig(
        use_advanced=True, k=8, score_threshold=0.6, search_type=SearchType.MMR, mmr_lambda=0.3
    ),
    model=ModelConfig(name="gpt-4-turbo", temperature=0.1, max_tokens=1500, top_p=0.8),
)

FAST = RAGConfig(
    embeddings=EmbeddingConfig(model="text-embedding-3-small", dimensions=1536, batch_size=1024),
    chunking=ChunkingConfig(
        strategy=ChunkingStrategy.STANDARD, chunk_size=1000, chunk_overlap=200, min_chunk_size=30
    ),
    retrieval=RetrievalConfig(
        use_advanced=False, k=5, score_threshold=0.5, search_type=SearchType.SIMILARITY, mmr_lambda=0.5
    ),
    model=ModelConfig(name="gpt-3.5-turbo", temperature=0.2, max_tokens=1000, top_p=0.9),
)

# Ordered from most precise to most permissive.
CANONICAL_TIERS: dict[str, RAGConfig] = {
    "high_quality": HIGH_QUALITY,
    "balanced": BALANCED,
    "fast": FAST,
}

DEFAULT_TIER = "default"
CUSTOM_TIER = "custom"

_ALIASES: dict[str, str] = {DEFAULT_TIER: "high_quality"}


def available_tiers() -> list[str]:
    """Names accepted by :func:`resolve_config`."""
    return [DEFAULT_TIER, CUSTOM_TIER, *CANONICAL_TIERS]


def resolve_config(
    tier: str = DEFAULT_TIER,
    overrides: dict[str, Any] | None = None,
    custom: dict[str, Any] | None = None,
) -> RAGConfig:
    """Return the :class:`RAGConfig` for *tier* with *overrides* deep-merged.

    Parameters
    ----------
    tier:
        ``default``, ``custom``, or a canonical tier name.
    overrides:
        Nested dict applied last, e.g. ``{"retrieval": {"k": 3}}``.
    custom:
        The ``rag.custom`` config section, applied over ``balanced`` when
        *tier* is ``custom``.

    Raises
    ------
    ConfigurationError
        Unknown tier name, or a merged configuration that fails validation.
    """
    if tier == CUSTOM_TIER:
        base = BALANCED
        layers = [custom or {}, overrides or {}]
    else:
        name = _ALIASES.get(tier, tier)
        if name not in CANONICAL_TIERS:
            raise ConfigurationError(
                message=f"Unknown RAG tier '{tier}'. Expected one of: {', '.join(available_tiers())}"
            )
        base = CANONICAL_TIERS[name]
        layers = [overrides or {}]

    if not any(layers):
        return base

    merged = copy.deepcopy(base.model_dump())
    for layer in layers:
        deep_merge(merged, layer)
    try:
        return RAGConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(message=f"Invalid RAG configuration for tier '{tier}': {exc}") from exc
