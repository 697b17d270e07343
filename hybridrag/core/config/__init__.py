"""
Configuration Management for HybridRAG.

Configuration is a hierarchy of dataclasses that map to a YAML file, with
environment variable expansion for secrets.

    config/
    ├── chunking.py      # ChunkingConfig
    ├── storage.py       # VectorStoreConfig, EmbeddingConfig, CircuitBreakerConfig
    ├── retrieval.py     # RetrievalConfig, LexicalConfig, FusionConfig
    ├── llm.py           # LLMConfig, LLMProviderConfig
    ├── features.py      # CacheConfig, MemoryConfig, SynthesisConfig, APIConfig
    └── config.py        # Main Config class

Usage Example
-------------
    config = load_config()
    top_k = config.retrieval.top_k
"""

from hybridrag.core.config.config import Config
from hybridrag.core.config.chunking import ChunkingConfig
from hybridrag.core.config.features import (
    APIConfig,
    CacheConfig,
    MemoryConfig,
    SynthesisConfig,
)
from hybridrag.core.config.llm import LLMConfig, LLMProviderConfig
from hybridrag.core.config.retrieval import (
    FusionConfig,
    FusionWeights,
    FuzzyConfig,
    LexicalConfig,
    RetrievalConfig,
)
from hybridrag.core.config.storage import (
    ChromaDBConfig,
    CircuitBreakerConfig,
    EmbeddingConfig,
    RetryPolicyConfig,
    VectorStoreConfig,
)

__all__ = [
    "Config",
    "ChunkingConfig",
    "APIConfig",
    "CacheConfig",
    "MemoryConfig",
    "SynthesisConfig",
    "LLMConfig",
    "LLMProviderConfig",
    "FusionConfig",
    "FusionWeights",
    "FuzzyConfig",
    "LexicalConfig",
    "RetrievalConfig",
    "ChromaDBConfig",
    "CircuitBreakerConfig",
    "EmbeddingConfig",
    "RetryPolicyConfig",
    "VectorStoreConfig",
]
