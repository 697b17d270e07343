"""
Main configuration class for HybridRAG.

The Config dataclass aggregates all sub-configs and handles validation and
dictionary/YAML round-tripping.

Configuration Hierarchy
-----------------------
    Config
    ├── ChunkingConfig      # Token ceiling, peer merging
    ├── VectorStoreConfig   # Backend, embeddings, batching, breaker, retry
    ├── RetrievalConfig     # BM25, fuzzy, thresholds, fusion profiles
    ├── LLMConfig           # Synthesis provider and model
    ├── CacheConfig         # Query cache capacity and TTL
    ├── MemoryConfig        # Conversation memory bounds and decay
    ├── SynthesisConfig     # Source limits, language
    └── APIConfig           # HTTP server settings

Environment Variables
---------------------
Secrets use ${VAR_NAME} or ${VAR_NAME:default} syntax in YAML:

    llm:
      openai:
        api_key: ${OPENAI_API_KEY}
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

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

VECTOR_BACKENDS = frozenset({"memory", "chromadb"})
EMBEDDING_PROVIDERS = frozenset({"sentence-transformers", "openai"})
LLM_PROVIDERS = frozenset({"openai", "claude", "none"})


@dataclass
class Config:
    """Main HybridRAG configuration."""

    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    api: APIConfig = field(default_factory=APIConfig)

    _base_path: Path = field(default_factory=Path.cwd, repr=False)

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        Validates:
        - Nested config types
        - Chunking and batching bounds
        - Backend/provider names
        - Fusion weight normalization
        """
        assert isinstance(self.chunking, ChunkingConfig), "chunking must be ChunkingConfig"
        assert isinstance(
            self.vector_store, VectorStoreConfig
        ), "vector_store must be VectorStoreConfig"
        assert isinstance(
            self.retrieval, RetrievalConfig
        ), "retrieval must be RetrievalConfig"
        assert isinstance(self.llm, LLMConfig), "llm must be LLMConfig"

        if self.chunking.max_tokens < 1:
            raise ValueError("chunking.max_tokens must be positive")
        if self.chunking.min_tokens >= self.chunking.max_tokens:
            raise ValueError("chunking.min_tokens must be less than chunking.max_tokens")
        if not 1 <= self.vector_store.batch_size <= 100:
            raise ValueError("vector_store.batch_size must be between 1 and 100")
        if self.vector_store.backend not in VECTOR_BACKENDS:
            raise ValueError(
                f"vector_store.backend must be one of {sorted(VECTOR_BACKENDS)}"
            )
        if self.vector_store.embedding.provider not in EMBEDDING_PROVIDERS:
            raise ValueError(
                f"embedding provider must be one of {sorted(EMBEDDING_PROVIDERS)}"
            )
        if self.llm.default_provider not in LLM_PROVIDERS:
            raise ValueError(f"llm.default_provider must be one of {sorted(LLM_PROVIDERS)}")
        if self.cache.max_size < 1:
            raise ValueError("cache.max_size must be positive")

        for weights in self.retrieval.fusion.profiles.values():
            weights.normalize()

    @property
    def chromadb_path(self) -> Path:
        """Get absolute path to the ChromaDB directory."""
        path = Path(self.vector_store.chromadb.persist_directory)
        return path if path.is_absolute() else self._base_path / path

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        result: dict[str, Any] = {}
        for key, value in asdict(self).items():
            if key.startswith("_"):
                continue
            result[key] = value
        return result

    @staticmethod
    def _filter_fields(cls_type: Any, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Filter dict to only keys that match dataclass fields, handling None."""
        if not data:
            return {}
        valid_keys = {f.name for f in fields(cls_type)}
        return {k: v for k, v in data.items() if k in valid_keys}

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], base_path: Optional[Path] = None
    ) -> "Config":
        """Create Config from dictionary."""
        from hybridrag.core.config_loaders import expand_env_vars

        data = expand_env_vars(data or {})

        config = cls(
            chunking=ChunkingConfig(
                **cls._filter_fields(ChunkingConfig, data.get("chunking"))
            ),
            vector_store=cls._parse_vector_store_config(data),
            retrieval=cls._parse_retrieval_config(data),
            llm=cls._parse_llm_config(data),
            cache=CacheConfig(**cls._filter_fields(CacheConfig, data.get("cache"))),
            memory=MemoryConfig(**cls._filter_fields(MemoryConfig, data.get("memory"))),
            synthesis=SynthesisConfig(
                **cls._filter_fields(SynthesisConfig, data.get("synthesis"))
            ),
            api=APIConfig(**cls._filter_fields(APIConfig, data.get("api"))),
        )

        if base_path:
            config._base_path = base_path
        return config

    @classmethod
    def _parse_vector_store_config(cls, data: Dict[str, Any]) -> VectorStoreConfig:
        """Parse vector store config with nested chromadb, embedding, breaker and retry."""
        store_data = data.get("vector_store") or {}
        return VectorStoreConfig(
            **{
                k: v
                for k, v in cls._filter_fields(VectorStoreConfig, store_data).items()
                if k not in ("chromadb", "embedding", "circuit_breaker", "retry")
            },
            chromadb=ChromaDBConfig(
                **cls._filter_fields(ChromaDBConfig, store_data.get("chromadb"))
            ),
            embedding=EmbeddingConfig(
                **cls._filter_fields(EmbeddingConfig, store_data.get("embedding"))
            ),
            circuit_breaker=CircuitBreakerConfig(
                **cls._filter_fields(
                    CircuitBreakerConfig, store_data.get("circuit_breaker")
                )
            ),
            retry=RetryPolicyConfig(
                **cls._filter_fields(RetryPolicyConfig, store_data.get("retry"))
            ),
        )

    @classmethod
    def _parse_retrieval_config(cls, data: Dict[str, Any]) -> RetrievalConfig:
        """Parse retrieval config with nested lexical, fuzzy and fusion profiles."""
        retrieval_data = data.get("retrieval") or {}
        fusion_data = retrieval_data.get("fusion") or {}
        profiles = FusionConfig().profiles
        for name, weights in (fusion_data.get("profiles") or {}).items():
            profiles[name] = FusionWeights(**cls._filter_fields(FusionWeights, weights))

        return RetrievalConfig(
            **{
                k: v
                for k, v in cls._filter_fields(RetrievalConfig, retrieval_data).items()
                if k not in ("lexical", "fuzzy", "fusion")
            },
            lexical=LexicalConfig(
                **cls._filter_fields(LexicalConfig, retrieval_data.get("lexical"))
            ),
            fuzzy=FuzzyConfig(
                **cls._filter_fields(FuzzyConfig, retrieval_data.get("fuzzy"))
            ),
            fusion=FusionConfig(profiles=profiles),
        )

    @classmethod
    def _parse_llm_config(cls, data: Dict[str, Any]) -> LLMConfig:
        """Parse LLM config with per-provider configs."""
        llm_data = data.get("llm") or {}
        defaults = LLMConfig()
        openai = LLMProviderConfig(
            **{
                **asdict(defaults.openai),
                **cls._filter_fields(LLMProviderConfig, llm_data.get("openai")),
            }
        )
        claude = LLMProviderConfig(
            **{
                **asdict(defaults.claude),
                **cls._filter_fields(LLMProviderConfig, llm_data.get("claude")),
            }
        )
        return LLMConfig(
            default_provider=llm_data.get("default_provider", defaults.default_provider),
            max_tokens=llm_data.get("max_tokens", defaults.max_tokens),
            openai=openai,
            claude=claude,
        )
