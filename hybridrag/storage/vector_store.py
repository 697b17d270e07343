"""
Vector Store Adapter.

Embeds chunks in batches and upserts them into per-namespace collections,
and answers semantic queries. Every provider call (embedding and database)
goes through one circuit breaker; ingestion batches are retried with
exponential backoff and a batch that exhausts its retries is recorded
without aborting the run.

    adapter = VectorStoreAdapter(config.vector_store, embedder, backend)
    summary = adapter.embed_and_store(chunks)
    hits = adapter.retrieve("school building budget", k=6, score_threshold=0.5)

Re-ingesting a document whose content is unchanged is a no-op (counted as
skipped). A changed document is re-embedded and its stale vectors removed.
"""

import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from hybridrag.chunking.models import Chunk
from hybridrag.core.circuit_breaker import CircuitBreaker, CircuitBreakerState, CircuitState
from hybridrag.core.config import Config, VectorStoreConfig
from hybridrag.core.exceptions import EmbeddingError, ValidationError
from hybridrag.core.logging import get_logger
from hybridrag.core.retry import BatchFailure, RetryConfig, batch_execute_with_retry
from hybridrag.storage.base import EmbeddedVector, VectorBackend, VectorHit
from hybridrag.storage.embeddings import EmbeddingProvider, create_embedder
from hybridrag.storage.memory import InMemoryVectorBackend
from hybridrag.storage.namespace import determine_namespace

logger = get_logger(__name__)

MIN_BATCH_SIZE = 5
MAX_BATCH_SIZE = 100


@dataclass
class IngestionSummary:
    """Per-document outcome of one embed_and_store run."""

    processed: int = 0  # new documents stored
    updated: int = 0  # changed documents re-stored
    skipped: int = 0  # unchanged documents
    errors: int = 0  # documents with at least one failed batch
    total_chunks: int = 0
    stored_chunks: int = 0
    failed_batches: List[BatchFailure] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "totalChunks": self.total_chunks,
            "storedChunks": self.stored_chunks,
            "failedBatches": [
                {"batchIndex": f.batch_index, "size": f.size, "error": f.error}
                for f in self.failed_batches
            ],
            "durationSeconds": round(self.duration_seconds, 3),
        }


def document_fingerprint(chunks: Sequence[Chunk]) -> str:
    """Hash of a document's ordered chunk content hashes."""
    ordered = sorted(chunks, key=lambda c: c.ordinal)
    joined = "|".join(c.content_hash for c in ordered)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]


@dataclass
class _DocumentState:
    fingerprint: str
    vector_ids: Set[Tuple[str, str]]  # (namespace, vector_id)


class VectorStoreAdapter:
    """Batching, retrying, circuit-protected front for a VectorBackend."""

    def __init__(
        self,
        config: Optional[VectorStoreConfig] = None,
        embedder: Optional[EmbeddingProvider] = None,
        backend: Optional[VectorBackend] = None,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self.config = config or VectorStoreConfig()
        self.embedder = embedder or create_embedder(self.config.embedding)
        self.backend = backend or InMemoryVectorBackend()
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=self.config.circuit_breaker.failure_threshold,
            reset_timeout=self.config.circuit_breaker.reset_timeout_seconds,
            name=f"vector-store:{self.backend.name}",
        )
        self._lock = threading.Lock()
        self._documents: Optional[Dict[str, _DocumentState]] = None

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def embed_and_store(
        self, chunks: Sequence[Chunk], batch_size: Optional[int] = None
    ) -> IngestionSummary:
        """Embed and upsert chunks, tolerating partial batch failure.

        Args:
            chunks: Chunks from one or more documents.
            batch_size: Chunks per provider call (clamped to 5..100).

        Returns:
            IngestionSummary with per-document counts and failed batches.
        """
        start = time.perf_counter()
        summary = IngestionSummary(total_chunks=len(chunks))
        if not chunks:
            return summary

        size = self._batch_size(batch_size, len(chunks))
        documents = self._group_by_document(chunks)

        with self._lock:
            known = self._known_documents()
            pending: List[Chunk] = []
            status: Dict[str, str] = {}
            for source, doc_chunks in documents.items():
                fingerprint = document_fingerprint(doc_chunks)
                previous = known.get(source)
                if previous is not None and previous.fingerprint == fingerprint:
                    summary.skipped += 1
                    continue
                status[source] = "updated" if previous is not None else "processed"
                pending.extend(doc_chunks)

        batches = [pending[i : i + size] for i in range(0, len(pending), size)]
        run = batch_execute_with_retry(batches, self._store_batch, self._retry_config())

        failed_sources = {
            chunk.source_document
            for failure in run.failures
            for chunk in batches[failure.batch_index]
        }
        summary.failed_batches = run.failures
        summary.stored_chunks = sum(count for _, count in run.results)

        with self._lock:
            for source, outcome in status.items():
                if source in failed_sources:
                    summary.errors += 1
                    continue
                self._commit_document(source, documents[source])
                if outcome == "updated":
                    summary.updated += 1
                else:
                    summary.processed += 1

        summary.duration_seconds = time.perf_counter() - start
        logger.info(
            "Embedded and stored chunks",
            processed=summary.processed,
            updated=summary.updated,
            skipped=summary.skipped,
            errors=summary.errors,
            stored=summary.stored_chunks,
        )
        return summary

    def _batch_size(self, requested: Optional[int], total: int) -> int:
        size = requested or self.config.batch_size
        size = max(MIN_BATCH_SIZE, min(MAX_BATCH_SIZE, size))
        return max(1, min(size, total))

    def _retry_config(self) -> RetryConfig:
        policy = self.config.retry
        return RetryConfig(
            max_attempts=policy.max_attempts,
            base_delay=policy.base_delay,
            max_delay=policy.max_delay,
        )

    @staticmethod
    def _group_by_document(chunks: Sequence[Chunk]) -> "OrderedDict[str, List[Chunk]]":
        documents: "OrderedDict[str, List[Chunk]]" = OrderedDict()
        for chunk in chunks:
            documents.setdefault(chunk.source_document, []).append(chunk)
        return documents

    def _store_batch(self, batch: Sequence[Chunk]) -> int:
        return self.breaker.call(self._embed_and_upsert, batch)

    def _embed_and_upsert(self, batch: Sequence[Chunk]) -> int:
        embeddings = self.embedder.embed_documents([c.text for c in batch])
        if len(embeddings) != len(batch):
            raise EmbeddingError(
                f"Embedding provider returned {len(embeddings)} vectors for {len(batch)} texts"
            )

        by_namespace: Dict[str, List[EmbeddedVector]] = {}
        for chunk, embedding in zip(batch, embeddings):
            namespace = determine_namespace(chunk.to_metadata())
            by_namespace.setdefault(namespace, []).append(
                EmbeddedVector(
                    vector_id=chunk.id,
                    embedding=list(embedding),
                    chunk=chunk,
                    namespace=namespace,
                )
            )

        written = 0
        for namespace, vectors in by_namespace.items():
            written += self.backend.upsert(namespace, vectors)
        return written

    def _known_documents(self) -> Dict[str, _DocumentState]:
        """Document fingerprints, rebuilt from the backend on first use."""
        if self._documents is None:
            grouped: Dict[str, List[Chunk]] = {}
            for chunk in self.backend.iter_chunks():
                grouped.setdefault(chunk.source_document, []).append(chunk)
            self._documents = {
                source: _DocumentState(
                    fingerprint=document_fingerprint(doc_chunks),
                    vector_ids={
                        (determine_namespace(c.to_metadata()), c.id) for c in doc_chunks
                    },
                )
                for source, doc_chunks in grouped.items()
            }
        return self._documents

    def _commit_document(self, source: str, chunks: Sequence[Chunk]) -> None:
        known = self._known_documents()
        new_ids = {(determine_namespace(c.to_metadata()), c.id) for c in chunks}
        previous = known.get(source)
        if previous is not None:
            self._delete_ids(previous.vector_ids - new_ids)
        known[source] = _DocumentState(
            fingerprint=document_fingerprint(chunks), vector_ids=new_ids
        )

    def _delete_ids(self, ids: Set[Tuple[str, str]]) -> None:
        by_namespace: Dict[str, List[str]] = {}
        for namespace, vector_id in ids:
            by_namespace.setdefault(namespace, []).append(vector_id)
        for namespace, vector_ids in by_namespace.items():
            self.breaker.call(self.backend.delete, namespace, vector_ids)

    def delete_document(self, source_document: str) -> int:
        """Remove every vector of a document; returns the number removed."""
        with self._lock:
            state = self._known_documents().pop(source_document, None)
        if state is None:
            return 0
        self._delete_ids(state.vector_ids)
        return len(state.vector_ids)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def retrieve(
        self,
        query: str,
        k: int = 6,
        score_threshold: float = 0.5,
        namespace: Optional[str] = None,
    ) -> List[VectorHit]:
        """Semantic search over one namespace or all of them.

        Returns:
            At most k hits with score >= score_threshold, highest first.

        Raises:
            ValidationError: Empty query.
            CircuitOpenError: Breaker is OPEN; no provider call was made.
        """
        if not query or not query.strip():
            raise ValidationError("Query must not be empty")
        if k <= 0:
            return []

        raw_hits = self.breaker.call(self._search, query, k, namespace)

        best: Dict[str, VectorHit] = {}
        for hit in raw_hits:
            if hit.score < score_threshold:
                continue
            existing = best.get(hit.chunk.id)
            if existing is None or hit.score > existing.score:
                best[hit.chunk.id] = hit

        ranked = sorted(best.values(), key=lambda h: (-h.score, h.chunk.ordinal))
        return ranked[:k]

    def _search(self, query: str, k: int, namespace: Optional[str]) -> List[VectorHit]:
        embedding = self.embedder.embed_query(query)
        names = [namespace] if namespace else self.backend.namespaces()
        hits: List[VectorHit] = []
        for name in names:
            hits.extend(self.backend.query(name, embedding, k))
        return hits

    # ------------------------------------------------------------------
    # Introspection and operations
    # ------------------------------------------------------------------

    def iter_chunks(self, namespace: Optional[str] = None) -> Iterator[Chunk]:
        return self.backend.iter_chunks(namespace)

    def count(self, namespace: Optional[str] = None) -> int:
        return self.backend.count(namespace)

    def circuit_breaker_state(self) -> CircuitBreakerState:
        return self.breaker.get_state()

    def reset_circuit_breaker(self) -> CircuitBreakerState:
        """Force the breaker back to CLOSED."""
        self.breaker.reset()
        return self.breaker.get_state()

    def health_check(self) -> Dict[str, Any]:
        state = self.breaker.get_state()
        status = {
            CircuitState.CLOSED: "healthy",
            CircuitState.HALF_OPEN: "degraded",
            CircuitState.OPEN: "unhealthy",
        }[state.state]

        report: Dict[str, Any] = {
            "status": status,
            "backend": self.backend.name,
            "embeddingModel": self.embedder.model_name,
            "circuitBreaker": state.to_dict(),
        }
        try:
            report["vectors"] = self.backend.count()
            report["namespaces"] = len(self.backend.namespaces())
        except Exception as e:
            logger.warning("Vector store health probe failed", error=str(e))
            report["status"] = "unhealthy"
            report["error"] = str(e)
        return report


def create_vector_backend(config: Config) -> VectorBackend:
    """Build the configured backend."""
    if config.vector_store.backend == "chromadb":
        from hybridrag.storage.chromadb import ChromaVectorBackend

        return ChromaVectorBackend(
            config.chromadb_path, config.vector_store.chromadb.collection_prefix
        )
    return InMemoryVectorBackend()
