"""Lifecycle manager for named vector stores.

The :class:`VectorStoreManager` owns a process-scoped registry mapping a
store name to its loaded index.  It is the only component that creates,
loads, mutates or evicts stores:

- ``load_or_create`` returns the cached store, else loads it from disk,
  else builds it from the supplied chunks.  Concurrent calls for the same
  name share one in-flight load (single flight), so a store is never loaded
  twice and every caller gets the same :class:`StoreHandle` object.
- ``add_documents`` appends chunks to a loaded store.  Mutations of one
  store are serialized by a per-store lock; other stores stay available.
- ``cleanup`` evicts handles from memory.  Nothing is evicted implicitly.
- User-scoped stores are ordinary stores named ``<user>_<document stem>``;
  the ``*_user_store*`` helpers build that name and delegate.

Embedding happens here, not in the index: chunks are embedded in
``batch_size`` batches, each batch goes through the bounded retry wrapper,
and only when every batch has succeeded is anything written.  A failed or
cancelled ingestion therefore never leaves a partial batch in an index.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import structlog

from ragchat.interfaces.embedding_provider import IEmbeddingProvider
from ragchat.interfaces.vector_index import IVectorIndex
from ragchat.models.rag import Chunk, StoreHandle, StoreState
from ragchat.providers.vector_store.chromadb_index import ChromaVectorIndex
from ragchat.utils.concurrency import KeyedLocks, SingleFlight
from ragchat.utils.errors import StoreNotFoundError, StoreNotLoadedError
from ragchat.utils.retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, call_with_retry

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_BATCH_SIZE = 512


@dataclass(frozen=True)
class _LoadedStore:
    handle: StoreHandle
    index: IVectorIndex


def validate_store_name(name: str) -> str:
    """Return *name* if it is usable as a single directory component."""
    if not name or name in {".", ".."} or Path(name).name != name or "/" in name or "\\" in name:
        raise ValueError(f"Invalid store name {name!r}: must be a single path component")
    return name


def user_store_name(user_id: str, document: str) -> str:
    """Name of *user_id*'s private store for *document*: ``<user>_<stem>``.

    User ids may not contain ``_``, so the prefix always identifies exactly
    one user when listing that user's stores.
    """
    if not user_id or "_" in user_id:
        raise ValueError(f"Invalid user id {user_id!r}: must be non-empty and contain no '_'")
    return validate_store_name(f"{user_id}_{Path(document).stem}")


class VectorStoreManager:
    """Creates, loads, caches and mutates named vector stores.

    Parameters
    ----------
    embedding_provider:
        Embeds chunk text for indexing and queries for search.
    base_path:
        Directory holding one sub-directory per persisted store.
    batch_size:
        Texts per embedding request, from the active tier.
    max_attempts / retry_base_delay:
        Bounded retry policy for embedding calls.
    index_cls:
        Vector index implementation; must provide ``open`` and ``create``
        class methods like :class:`ChromaVectorIndex`.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        base_path: str | Path = "./vectorstores",
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        index_cls: type[ChromaVectorIndex] = ChromaVectorIndex,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._base_path = Path(base_path)
        self._batch_size = max(1, batch_size)
        self._max_attempts = max_attempts
        self._retry_base_delay = retry_base_delay
        self._index_cls = index_cls

        self._stores: dict[str, _LoadedStore] = {}
        self._loads: SingleFlight[str, StoreHandle] = SingleFlight()
        self._locks: KeyedLocks[str] = KeyedLocks()

    @property
    def base_path(self) -> Path:
        return self._base_path

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def exists(self, name: str) -> bool:
        """``True`` if *name* is loaded or persisted under the base path."""
        return name in self._stores or self._store_path(name).is_dir()

    def is_loaded(self, name: str) -> bool:
        return name in self._stores

    def state(self, name: str) -> StoreState:
        if name in self._stores:
            return StoreState.LOADED
        if self._loads.is_in_flight(name):
            return StoreState.LOADING
        return StoreState.UNLOADED

    def list_available(self) -> list[str]:
        """Return the sorted names of persisted stores."""
        if not self._base_path.is_dir():
            return []
        return sorted(
            path.name
            for path in self._base_path.iterdir()
            if path.is_dir() and not path.name.startswith(".")
        )

    def list_loaded(self) -> list[str]:
        return sorted(self._stores)

    def handle(self, name: str) -> StoreHandle:
        return self._require_loaded(name).handle

    def index(self, name: str) -> IVectorIndex:
        return self._require_loaded(name).index

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load_or_create(self, name: str, chunks: list[Chunk] | None = None) -> StoreHandle:
        """Return the handle for *name*, loading or building the store if needed.

        Resolution order: in-memory registry, persisted directory, then a
        new store built from *chunks* (an empty list builds an empty store).
        While a load for *name* is in flight, later callers join it and
        their *chunks* argument is ignored.

        Raises
        ------
        StoreNotFoundError
            Not loaded, not persisted, and *chunks* is ``None``.
        IndexCorruptionError
            The persisted directory cannot be read.
        ConfigurationError
            Persisted vectors do not match the embedding dimension.
        ProviderError
            Embedding failed after all retries while building.
        """
        validate_store_name(name)
        loaded = self._stores.get(name)
        if loaded is not None:
            return loaded.handle
        return await self._loads.do(name, lambda: self._load_or_build(name, chunks))

    async def add_documents(self, name: str, chunks: list[Chunk]) -> StoreHandle:
        """Embed *chunks* and append them to the loaded store *name*.

        Chunks already present (same content hash) are skipped, so
        re-ingesting a document is a no-op.

        Raises
        ------
        StoreNotLoadedError
            *name* has not been loaded in this process.
        ProviderError
            Embedding failed after all retries; nothing was written.
        """
        async with self._locks.hold(name):
            loaded = self._require_loaded(name)
            existing = loaded.index.has_ids([chunk.chunk_id for chunk in chunks])
            fresh = [chunk for chunk in chunks if chunk.chunk_id not in existing]
            if not fresh:
                logger.info("store_add_skipped", store=name, duplicates=len(chunks))
                return loaded.handle

            embeddings = await self._embed_chunks(fresh)
            written = await loaded.index.add(fresh, embeddings)

            handle = loaded.handle.model_copy(
                update={
                    "chunk_count": loaded.index.count(),
                    "last_updated": datetime.now(timezone.utc),
                }
            )
            self._stores[name] = _LoadedStore(handle=handle, index=loaded.index)

        logger.info(
            "store_documents_added",
            store=name,
            added=written,
            skipped=len(chunks) - len(fresh),
            chunk_count=handle.chunk_count,
        )
        return handle

    async def cleanup(self, name: str | None = None) -> list[str]:
        """Evict *name* (or every store) from memory; return evicted names.

        A load already in flight for a store being evicted is allowed to
        finish first and is then evicted with the rest; its callers still
        receive their handle.  Persisted data is left untouched, so an
        evicted store can be loaded again later.
        """
        if name is not None:
            names = [name]
        else:
            names = sorted(set(self._stores) | set(self._loads.keys()))
        evicted: list[str] = []
        for store_name in names:
            await self._loads.wait(store_name)
            async with self._locks.hold(store_name):
                if self._stores.pop(store_name, None) is not None:
                    evicted.append(store_name)
        logger.info("stores_evicted", stores=evicted)
        return evicted

    # ------------------------------------------------------------------
    # User-scoped stores
    # ------------------------------------------------------------------

    def user_store_exists(self, user_id: str, document: str) -> bool:
        return self.exists(user_store_name(user_id, document))

    async def load_or_create_user_store(
        self, user_id: str, document: str, chunks: list[Chunk] | None = None
    ) -> StoreHandle:
        """:meth:`load_or_create` for *user_id*'s store of *document*."""
        return await self.load_or_create(user_store_name(user_id, document), chunks)

    def list_user_stores(self, user_id: str) -> list[str]:
        """Document stems *user_id* has a store for, loaded or persisted."""
        prefix = user_store_name(user_id, "")
        names = set(self.list_available()) | set(self._stores)
        return sorted(name[len(prefix):] for name in names if name.startswith(prefix) and name != prefix)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_or_build(self, name: str, chunks: list[Chunk] | None) -> StoreHandle:
        loaded = self._stores.get(name)
        if loaded is not None:
            return loaded.handle

        path = self._store_path(name)
        retry_kwargs = {"max_attempts": self._max_attempts, "retry_base_delay": self._retry_base_delay}

        if path.is_dir():
            index = self._index_cls.open(path, self._embedding_provider, **retry_kwargs)
            created_at = datetime.fromtimestamp(path.stat().st_ctime, tz=timezone.utc)
            source = "disk"
        elif chunks is not None:
            # Embed first: a provider failure must not leave a directory behind.
            embeddings = await self._embed_chunks(chunks)
            index = self._index_cls.create(path, self._embedding_provider, **retry_kwargs)
            if chunks:
                await index.add(chunks, embeddings)
            created_at = datetime.now(timezone.utc)
            source = "built"
        else:
            raise StoreNotFoundError(
                message=f"Vector store '{name}' is neither loaded nor persisted under {self._base_path}",
                provider_name="vector_store",
            )

        handle = StoreHandle(
            name=name,
            embedding_dimension=self._embedding_provider.get_dimension(),
            backing_path=str(path),
            loaded=True,
            state=StoreState.LOADED,
            chunk_count=index.count(),
            created_at=created_at,
            last_updated=datetime.now(timezone.utc),
        )
        self._stores[name] = _LoadedStore(handle=handle, index=index)
        logger.info("store_loaded", store=name, source=source, chunk_count=handle.chunk_count)
        return handle

    async def _embed_chunks(self, chunks: list[Chunk]) -> list[list[float]]:
        """Embed every chunk in batches; raise before returning anything on failure."""
        embeddings: list[list[float]] = []
        texts = [chunk.content for chunk in chunks]
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            vectors = await call_with_retry(
                lambda batch=batch: self._embedding_provider.embed_documents(batch),
                max_attempts=self._max_attempts,
                base_delay=self._retry_base_delay,
                operation_name="embed_documents",
                provider_name=self._embedding_provider.get_provider_name(),
            )
            embeddings.extend(vectors)
        return embeddings

    def _require_loaded(self, name: str) -> _LoadedStore:
        loaded = self._stores.get(name)
        if loaded is None:
            raise StoreNotLoadedError(
                message=f"Vector store '{name}' is not loaded",
                provider_name="vector_store",
            )
        return loaded

    def _store_path(self, name: str) -> Path:
        return self._base_path / name
