"""
Vector store configuration.

Backend selection, embedding provider, batching, retry policy and the
circuit breaker thresholds.
"""

from dataclasses import dataclass, field


@dataclass
class ChromaDBConfig:
    """ChromaDB storage configuration."""

    persist_directory: str = ".data/chromadb"
    collection_prefix: str = "hybridrag"


@dataclass
class EmbeddingConfig:
    """Embedding provider configuration."""

    provider: str = "sentence-transformers"  # sentence-transformers, openai
    model: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
    api_key: str = ""
    device: str = "cpu"


@dataclass
class CircuitBreakerConfig:
    """Consecutive-failure breaker for provider calls."""

    failure_threshold: int = 5
    reset_timeout_seconds: float = 60.0


@dataclass
class RetryPolicyConfig:
    """Backoff for per-batch ingestion retries."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0


@dataclass
class VectorStoreConfig:
    """Vector store adapter configuration."""

    backend: str = "memory"  # memory, chromadb
    batch_size: int = 25
    default_namespace: str = "documents"
    chromadb: ChromaDBConfig = field(default_factory=ChromaDBConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    retry: RetryPolicyConfig = field(default_factory=RetryPolicyConfig)
