"""Configuration module: environment settings, YAML loader and RAG tiers."""

from ragchat.config.loader import load_config
from ragchat.config.settings import Settings
from ragchat.config.tiers import RAGConfig, available_tiers, resolve_config

__all__ = ["RAGConfig", "Settings", "available_tiers", "load_config", "resolve_config"]
