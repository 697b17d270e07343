"""
Base interfaces for vector backends.

    ┌──────────────────────┐
    │  VectorStoreAdapter  │  batching, retry, circuit breaker, namespaces
    └──────────┬───────────┘
               │
    ┌──────────┴───────────┐
    │    VectorBackend     │  (abstract)
    └──────────┬───────────┘
         ┌─────┴──────┐
         ↓            ↓
    ┌─────────┐  ┌──────────┐
    │ Memory  │  │ ChromaDB │
    └─────────┘  └──────────┘

Backends store EmbeddedVector records per namespace and answer cosine
similarity queries. They know nothing about retries or breakers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

from hybridrag.chunking.models import Chunk


@dataclass(frozen=True)
class EmbeddedVector:
    """A chunk with its embedding, addressed by (namespace, vector_id)."""

    vector_id: str
    embedding: List[float]
    chunk: Chunk
    namespace: str


@dataclass(frozen=True)
class VectorHit:
    """A semantic search hit."""

    chunk: Chunk
    score: float  # cosine similarity
    namespace: str


class VectorBackend(ABC):
    """Storage for embedded vectors grouped by namespace."""

    name: str = "abstract"

    @abstractmethod
    def upsert(self, namespace: str, vectors: Sequence[EmbeddedVector]) -> int:
        """Insert or replace vectors; returns the number written."""

    @abstractmethod
    def query(
        self, namespace: str, embedding: Sequence[float], top_k: int
    ) -> List[VectorHit]:
        """Return up to top_k hits sorted by descending similarity."""

    @abstractmethod
    def delete(self, namespace: str, vector_ids: Sequence[str]) -> int:
        ...

    @abstractmethod
    def namespaces(self) -> List[str]:
        ...

    @abstractmethod
    def count(self, namespace: Optional[str] = None) -> int:
        ...

    @abstractmethod
    def iter_chunks(self, namespace: Optional[str] = None) -> Iterator[Chunk]:
        """Yield stored chunks, used to rebuild the lexical index."""

    @abstractmethod
    def clear(self) -> None:
        ...
