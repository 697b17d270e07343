"""
Vector storage: namespaces, embedding providers, backends and the adapter.
"""

from hybridrag.storage.base import EmbeddedVector, VectorBackend, VectorHit
from hybridrag.storage.embeddings import (
    EmbeddingProvider,
    OpenAIEmbedder,
    SentenceTransformerEmbedder,
    create_embedder,
)
from hybridrag.storage.memory import InMemoryVectorBackend
from hybridrag.storage.namespace import determine_namespace
from hybridrag.storage.vector_store import (
    IngestionSummary,
    VectorStoreAdapter,
    create_vector_backend,
)

__all__ = [
    "EmbeddedVector",
    "VectorBackend",
    "VectorHit",
    "EmbeddingProvider",
    "OpenAIEmbedder",
    "SentenceTransformerEmbedder",
    "create_embedder",
    "InMemoryVectorBackend",
    "determine_namespace",
    "IngestionSummary",
    "VectorStoreAdapter",
    "create_vector_backend",
]
