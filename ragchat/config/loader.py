"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. Settings field defaults
  2. config/config.yaml  -- static defaults checked into the repo
  3. .env file           -- local developer overrides (not committed)
  4. Environment vars    -- set at deploy time

:func:`load_config` reads the YAML file, then deep-merges only the Settings
fields that were actually set (by ``.env``, the environment or the
constructor), so an unset field never masks a value edited in config.yaml.
:func:`apply_config` reads the merged values back onto a Settings instance
for the factories in :mod:`ragchat.main`.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from ragchat.config.settings import Settings

# config.yaml (section, key) -> Settings field.
SETTINGS_KEYS: dict[tuple[str, str], str] = {
    ("app", "env"): "app_env",
    ("paths", "vectorstore_dir"): "vectorstore_dir",
    ("paths", "docs_dir"): "docs_dir",
    ("rag", "tier"): "rag_tier",
    ("rag", "combined_store_name"): "combined_store_name",
    ("rag", "retrieval_max_k"): "retrieval_max_k",
    ("chat_history", "backend"): "chat_history_backend",
    ("chat_history", "db_path"): "chat_history_db_path",
    ("chat_history", "max_exchanges"): "max_history_exchanges",
    ("logging", "level"): "log_level",
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict[str, Any]:
    """Load YAML config and merge the explicitly set Settings fields over it.

    Args:
        path: Path to the YAML configuration file.  A missing file yields
              an empty base configuration.
        settings: Settings instance to merge; a fresh one is built when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides: dict[str, dict[str, Any]] = {}
    for (section, key), field in SETTINGS_KEYS.items():
        if field in settings.model_fields_set:
            env_overrides.setdefault(section, {})[key] = getattr(settings, field)

    deep_merge(yaml_config, env_overrides)
    return yaml_config


def apply_config(settings: Settings, config: dict[str, Any]) -> Settings:
    """Return a copy of *settings* carrying the values found in *config*.

    Keys absent from *config* keep the value *settings* already has.
    """
    updates = {
        field: config[section][key]
        for (section, key), field in SETTINGS_KEYS.items()
        if isinstance(config.get(section), dict) and key in config[section]
    }
    return settings.model_copy(update=updates)


def deep_merge(base: dict, overrides: dict) -> dict:
    """Recursively merge *overrides* into *base*, mutating and returning *base*.

    Nested dicts are merged key by key; every other value replaces the base.
    """
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)
    return base
