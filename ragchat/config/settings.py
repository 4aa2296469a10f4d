"""Application settings loaded from environment variables via pydantic-settings.

Values come from two sources, highest priority first:

  1. Environment variables, e.g. ``OPENAI_API_KEY=sk-...``
  2. A ``.env`` file in the working directory

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``; defaults apply
when neither source sets a field.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """ragchat application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === OpenAI ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint (TogetherAI, Azure proxy, ...)
    llm_timeout_seconds: float = 60.0
    llm_streaming: bool = False

    # === Storage layout ===
    vectorstore_dir: str = "./vectorstores"
    docs_dir: str = "./docs"
    combined_store_name: str = "combined"

    # === RAG behaviour ===
    # One of: default, custom, high_quality, balanced, fast
    rag_tier: str = "default"
    retrieval_max_k: int = 20
    embedding_max_retries: int = 3
    embedding_retry_base_delay: float = 0.5

    # === Chat history ===
    chat_history_backend: str = "sqlite"  # "sqlite" or "memory"
    chat_history_db_path: str = "data/chat_history.db"
    max_history_exchanges: int = 6
    max_context_chars: int = 12000

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"
