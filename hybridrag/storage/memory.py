"""In-process vector backend using numpy cosine similarity."""

import threading
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np

from hybridrag.chunking.models import Chunk
from hybridrag.storage.base import EmbeddedVector, VectorBackend, VectorHit


class InMemoryVectorBackend(VectorBackend):
    """Namespace -> {vector_id: EmbeddedVector} held in memory.

    Suitable for tests, the CLI and small corpora; nothing is persisted.
    """

    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._store: Dict[str, Dict[str, EmbeddedVector]] = {}

    def upsert(self, namespace: str, vectors: Sequence[EmbeddedVector]) -> int:
        with self._lock:
            bucket = self._store.setdefault(namespace, {})
            for vector in vectors:
                bucket[vector.vector_id] = vector
        return len(vectors)

    def query(
        self, namespace: str, embedding: Sequence[float], top_k: int
    ) -> List[VectorHit]:
        with self._lock:
            records = list(self._store.get(namespace, {}).values())
        if not records or top_k <= 0:
            return []

        matrix = np.asarray([r.embedding for r in records], dtype=np.float32)
        query = np.asarray(embedding, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        norms[norms == 0] = 1.0
        scores = (matrix @ query) / norms

        order = np.argsort(-scores)[:top_k]
        return [
            VectorHit(
                chunk=records[i].chunk, score=float(scores[i]), namespace=namespace
            )
            for i in order
        ]

    def delete(self, namespace: str, vector_ids: Sequence[str]) -> int:
        removed = 0
        with self._lock:
            bucket = self._store.get(namespace, {})
            for vector_id in vector_ids:
                if bucket.pop(vector_id, None) is not None:
                    removed += 1
            if namespace in self._store and not bucket:
                del self._store[namespace]
        return removed

    def namespaces(self) -> List[str]:
        with self._lock:
            return sorted(self._store)

    def count(self, namespace: Optional[str] = None) -> int:
        with self._lock:
            if namespace is not None:
                return len(self._store.get(namespace, {}))
            return sum(len(bucket) for bucket in self._store.values())

    def iter_chunks(self, namespace: Optional[str] = None) -> Iterator[Chunk]:
        with self._lock:
            names = [namespace] if namespace is not None else sorted(self._store)
            records = [
                r for name in names for r in self._store.get(name, {}).values()
            ]
        for record in records:
            yield record.chunk

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
