"""Custom exception hierarchy for ragchat.

All application exceptions inherit from :class:`RagChatError`, which
carries an optional ``provider_name`` so error handlers can identify which
component or external service (e.g. "openai", "chromadb", "vector_store")
caused the failure.

The hierarchy is organized by pipeline domain:

    RagChatError  (base -- catch-all for any ragchat error)
    +-- StoreNotFoundError       (store neither loaded nor persisted)
    +-- StoreNotLoadedError      (mutation/lookup on an unloaded store)
    +-- IndexCorruptionError     (persisted index cannot be read)
    +-- ConfigurationError       (invalid tier / dimension mismatch / missing key)
    +-- DocumentNotFoundError    (named source file missing from the docs directory)
    +-- ProviderError            (embedding or LLM call failed, retries exhausted)
        +-- RateLimitError           (retriable: provider throttled us)
        +-- ProviderUnavailableError (retriable: provider down or timed out)
        +-- LLMError                 (model call failed or returned nothing)

Callers retry on RateLimitError / ProviderUnavailableError, surface
StoreNotFoundError to the user, and abort on ConfigurationError.
"""


class RagChatError(Exception):
    """Base exception for all ragchat errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Vector store lifecycle errors
# ---------------------------------------------------------------------------

class StoreNotFoundError(RagChatError):
    """Raised when a store is neither loaded in memory nor persisted on disk."""

    def __init__(
        self,
        message: str = "Vector store not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StoreNotLoadedError(RagChatError):
    """Raised when an operation needs a store that has not been loaded yet."""

    def __init__(
        self,
        message: str = "Vector store is not loaded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IndexCorruptionError(RagChatError):
    """Raised when a persisted store directory exists but cannot be read."""

    def __init__(
        self,
        message: str = "Persisted vector index is unreadable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External provider errors
# ---------------------------------------------------------------------------

class ProviderError(RagChatError):
    """Raised when an embedding or model provider call fails for good.

    The vector store manager raises this once its bounded retry wrapper
    has exhausted every attempt.
    """

    def __init__(
        self,
        message: str = "Provider call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(ProviderError):
    """Raised when a provider rate limit is exceeded.

    Retriable: the retry wrapper backs off exponentially and tries again.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(ProviderError):
    """Raised when a provider is unreachable or times out.  Retriable."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(ProviderError):
    """Raised when an LLM API call fails or returns an empty response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(RagChatError):
    """Raised when configuration is invalid, missing, or inconsistent.

    Includes an embedding-dimension mismatch between a persisted store and
    the active embedding provider.
    """

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Document errors
# ---------------------------------------------------------------------------

class DocumentNotFoundError(RagChatError):
    """Raised when a named source document does not exist in the docs directory."""

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
