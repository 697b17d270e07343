"""
Configuration Loading and Management Functions.

Handles loading, saving, and applying environment overrides to the
HybridRAG configuration.

Configuration precedence: 1. Env vars, 2. YAML file, 3. Defaults.

Environment overrides
---------------------
    OPENAI_API_KEY / ANTHROPIC_API_KEY   provider keys
    HYBRIDRAG_LLM_PROVIDER               openai | claude | none
    HYBRIDRAG_LLM_MODEL                  model for the default provider
    HYBRIDRAG_VECTOR_BACKEND             memory | chromadb
    HYBRIDRAG_CHROMADB_PATH              persist directory
    HYBRIDRAG_EMBEDDING_MODEL            embedding model name
    HYBRIDRAG_BATCH_SIZE                 embedding batch size (1-100)
    HYBRIDRAG_API_HOST / HYBRIDRAG_API_PORT
"""

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any, FrozenSet, Optional

import yaml

from hybridrag.core.config.config import LLM_PROVIDERS, VECTOR_BACKENDS

if TYPE_CHECKING:
    from hybridrag.core.config import Config

CONFIG_FILENAMES = ("hybridrag.yaml", "config.yaml")
_MODEL_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9._:\-/]+$")


class _Logger:
    """Lazy logger holder.

    Rule #6: Encapsulates logger state in smallest scope.
    """

    _instance = None

    @classmethod
    def get(cls) -> Any:
        """Get logger (lazy-loaded)."""
        if cls._instance is None:
            from hybridrag.core.logging import get_logger

            cls._instance = get_logger(__name__)
        return cls._instance


def expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in config values.

    Handles ${VAR_NAME} and ${VAR_NAME:default} inside strings, nested
    dictionaries and lists.
    """
    if isinstance(value, str):
        pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

        def replace_env_var(match: re.Match) -> str:
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default_value)

        return re.sub(pattern, replace_env_var, value)
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def get_env_int(
    name: str, min_value: Optional[int] = None, max_value: Optional[int] = None
) -> Optional[int]:
    """Read an integer from the environment, clamped to bounds."""
    raw = os.environ.get(name)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        _Logger.get().warning(f"Invalid integer for {name}, ignoring", value=raw)
        return None
    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


def get_env_whitelist(name: str, allowed: FrozenSet[str]) -> Optional[str]:
    """Read a string from the environment, accepted only if whitelisted."""
    raw = os.environ.get(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value not in allowed:
        _Logger.get().warning(f"Ignoring unsupported value for {name}", value=raw)
        return None
    return value


def _apply_env_overrides(config: "Config") -> "Config":
    """
    Apply environment variable overrides to configuration.

    Environment variables take precedence over config file values.
    """
    _apply_api_key_overrides(config)
    _apply_llm_overrides(config)
    _apply_vector_store_overrides(config)
    _apply_api_server_overrides(config)
    return config


def _apply_api_key_overrides(config: "Config") -> None:
    """Apply LLM API key overrides from environment."""
    openai_key = os.environ.get("OPENAI_API_KEY")
    if openai_key:
        config.llm.openai.api_key = openai_key
        if config.vector_store.embedding.provider == "openai":
            config.vector_store.embedding.api_key = openai_key

    anthropic_key = os.environ.get("ANTHROPIC_API_KEY")
    if anthropic_key:
        config.llm.claude.api_key = anthropic_key


def _apply_llm_overrides(config: "Config") -> None:
    """Apply LLM provider and model overrides."""
    provider = get_env_whitelist("HYBRIDRAG_LLM_PROVIDER", LLM_PROVIDERS)
    if provider:
        config.llm.default_provider = provider

    model = os.environ.get("HYBRIDRAG_LLM_MODEL")
    if model and _MODEL_NAME_PATTERN.match(model):
        provider_configs = {"openai": config.llm.openai, "claude": config.llm.claude}
        provider_config = provider_configs.get(config.llm.default_provider)
        if provider_config:
            provider_config.model = model


def _apply_vector_store_overrides(config: "Config") -> None:
    """Apply backend, path, embedding model and batch size overrides."""
    backend = get_env_whitelist("HYBRIDRAG_VECTOR_BACKEND", VECTOR_BACKENDS)
    if backend:
        config.vector_store.backend = backend

    chroma_path = os.environ.get("HYBRIDRAG_CHROMADB_PATH")
    if chroma_path:
        config.vector_store.chromadb.persist_directory = chroma_path

    embedding_model = os.environ.get("HYBRIDRAG_EMBEDDING_MODEL")
    if embedding_model and _MODEL_NAME_PATTERN.match(embedding_model):
        config.vector_store.embedding.model = embedding_model

    batch_size = get_env_int("HYBRIDRAG_BATCH_SIZE", min_value=1, max_value=100)
    if batch_size is not None:
        config.vector_store.batch_size = batch_size


def _apply_api_server_overrides(config: "Config") -> None:
    """Apply API server host and port overrides."""
    api_host = os.environ.get("HYBRIDRAG_API_HOST")
    if api_host and re.match(r"^[a-zA-Z0-9.\-]+$", api_host):
        config.api.host = api_host

    api_port = get_env_int("HYBRIDRAG_API_PORT", min_value=1, max_value=65535)
    if api_port is not None:
        config.api.port = api_port


def load_config(
    config_path: Optional[Path] = None, base_path: Optional[Path] = None
) -> "Config":
    """
    Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to config file. Defaults to hybridrag.yaml or
            config.yaml in base_path.
        base_path: Base path for the project. Defaults to current directory.

    Returns:
        Config object with all settings.
    """
    from hybridrag.core.config import Config

    base_path = base_path or Path.cwd()

    if config_path is None:
        for filename in CONFIG_FILENAMES:
            candidate = base_path / filename
            if candidate.exists():
                config_path = candidate
                break
        else:
            return _create_default_config(base_path)
    if not config_path.exists():
        return _create_default_config(base_path)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        config = Config.from_dict(data, base_path)
        return _apply_env_overrides(config)
    except (yaml.YAMLError, TypeError, ValueError) as e:
        _Logger.get().warning(
            "Could not load config, using defaults",
            path=str(config_path),
            error=str(e),
        )
        return _create_default_config(base_path)


def _create_default_config(base_path: Path) -> "Config":
    from hybridrag.core.config import Config

    config = Config()
    config._base_path = base_path
    return _apply_env_overrides(config)


def save_config(config: "Config", config_path: Optional[Path] = None) -> None:
    """Save configuration to YAML file."""
    if config_path is None:
        config_path = config._base_path / CONFIG_FILENAMES[0]

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
