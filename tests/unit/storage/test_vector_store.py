"""
Tests for VectorStoreAdapter.

The hashing embedder from conftest stands in for the embedding model;
provider failures are injected by patching its embed_documents.

Organization
------------
- TestBatchSize: Clamping
- TestEmbedAndStore: New, unchanged and changed documents
- TestPartialFailure: Failed batches and the circuit breaker
- TestRetrieve: Threshold, dedupe, ordering, namespaces
- TestHealthCheck: Status mapping
"""

from unittest.mock import patch

import pytest

from hybridrag.core.circuit_breaker import CircuitState
from hybridrag.core.config import VectorStoreConfig
from hybridrag.core.exceptions import CircuitOpenError, ValidationError
from hybridrag.storage.base import EmbeddedVector
from hybridrag.storage.memory import InMemoryVectorBackend
from hybridrag.storage.vector_store import VectorStoreAdapter, document_fingerprint


# ============================================================================
# Test Helpers
# ============================================================================


@pytest.fixture
def store_config() -> VectorStoreConfig:
    config = VectorStoreConfig()
    config.retry.base_delay = 0.0
    config.retry.max_delay = 0.0
    return config


@pytest.fixture
def backend() -> InMemoryVectorBackend:
    return InMemoryVectorBackend()


@pytest.fixture
def adapter(store_config, embedder, backend) -> VectorStoreAdapter:
    return VectorStoreAdapter(store_config, embedder, backend)


@pytest.fixture
def kerala_chunks(make_chunk):
    return [
        make_chunk("Kerala's population is 33 million.", source_document="kerala.md", ordinal=0),
        make_chunk("Kerala has fourteen districts.", source_document="kerala.md", ordinal=1),
    ]


def _failing_when(embedder, marker: str):
    """Patch the embedder to fail on any batch containing ``marker``."""
    original = embedder.embed_documents

    def embed(texts):
        if any(marker in text for text in texts):
            raise ConnectionError("provider down")
        return original(texts)

    return patch.object(embedder, "embed_documents", side_effect=embed)


# ============================================================================
# Test Classes
# ============================================================================


class TestBatchSize:
    """Batch size is clamped to 5..100 and never exceeds the chunk count."""

    @pytest.mark.parametrize(
        "requested, total, expected",
        [(1, 50, 5), (500, 200, 100), (None, 3, 3), (None, 100, 25), (10, 50, 10)],
    )
    def test_clamping(self, adapter, requested, total, expected):
        assert adapter._batch_size(requested, total) == expected


class TestEmbedAndStore:
    """Tests for embed_and_store."""

    def test_empty_input(self, adapter):
        summary = adapter.embed_and_store([])

        assert summary.total_chunks == 0
        assert summary.processed == 0

    def test_new_documents_processed(self, adapter, backend, kerala_chunks, make_chunk):
        table = make_chunk(
            "Columns: Ward, Budget\nWard is 12; Budget is 30 lakh.",
            source_document="budget.md",
            chunk_type="table",
        )

        summary = adapter.embed_and_store(kerala_chunks + [table])

        assert summary.processed == 2
        assert summary.stored_chunks == 3
        assert summary.errors == 0
        assert backend.namespaces() == ["documents-kerala", "tables-budget"]
        assert backend.count() == 3

    def test_unchanged_document_skipped(self, adapter, embedder, kerala_chunks):
        adapter.embed_and_store(kerala_chunks)
        calls = embedder.calls

        summary = adapter.embed_and_store(kerala_chunks)

        assert summary.skipped == 1
        assert summary.processed == 0
        assert embedder.calls == calls

    def test_changed_document_replaces_stale_vectors(self, adapter, backend, kerala_chunks, make_chunk):
        adapter.embed_and_store(kerala_chunks)
        revised = [kerala_chunks[0], make_chunk("Kerala has 14 districts.", source_document="kerala.md", ordinal=1)]

        summary = adapter.embed_and_store(revised)

        assert summary.updated == 1
        assert backend.count() == 2
        assert {c.id for c in backend.iter_chunks()} == {c.id for c in revised}

    def test_fingerprints_restored_from_backend(self, store_config, embedder, backend, kerala_chunks):
        """A fresh adapter over a populated backend still skips unchanged documents."""
        VectorStoreAdapter(store_config, embedder, backend).embed_and_store(kerala_chunks)

        summary = VectorStoreAdapter(store_config, embedder, backend).embed_and_store(kerala_chunks)

        assert summary.skipped == 1

    def test_delete_document(self, adapter, backend, kerala_chunks):
        adapter.embed_and_store(kerala_chunks)

        assert adapter.delete_document("kerala.md") == 2
        assert backend.count() == 0
        assert adapter.delete_document("kerala.md") == 0

    def test_fingerprint_order_independent(self, kerala_chunks):
        assert document_fingerprint(kerala_chunks) == document_fingerprint(kerala_chunks[::-1])

    def test_summary_to_dict(self, adapter, kerala_chunks):
        data = adapter.embed_and_store(kerala_chunks).to_dict()

        assert data["processed"] == 1
        assert data["storedChunks"] == 2
        assert data["failedBatches"] == []


class TestPartialFailure:
    """A failing batch is recorded without aborting the run."""

    def test_failed_document_counted_and_not_committed(self, adapter, embedder, backend, make_chunk):
        good = [make_chunk(f"Kerala fact {i}.", source_document="a.md", ordinal=i) for i in range(5)]
        bad = [make_chunk(f"FAIL fact {i}.", source_document="b.md", ordinal=i) for i in range(5)]

        with _failing_when(embedder, "FAIL"):
            summary = adapter.embed_and_store(good + bad, batch_size=5)

        assert summary.processed == 1
        assert summary.errors == 1
        assert summary.stored_chunks == 5
        assert [f.batch_index for f in summary.failed_batches] == [1]
        assert summary.failed_batches[0].attempts == 3
        assert backend.count() == 5

        retry_summary = adapter.embed_and_store(bad)
        assert retry_summary.processed == 1

    def test_each_attempt_counts_toward_breaker(self, adapter, embedder, kerala_chunks):
        with _failing_when(embedder, "Kerala"):
            adapter.embed_and_store(kerala_chunks)

        state = adapter.circuit_breaker_state()
        assert state.state == CircuitState.CLOSED
        assert state.failure_count == 3

    def test_open_breaker_fails_fast(self, store_config, embedder, backend, kerala_chunks):
        store_config.circuit_breaker.failure_threshold = 2
        adapter = VectorStoreAdapter(store_config, embedder, backend)

        with _failing_when(embedder, "Kerala"):
            summary = adapter.embed_and_store(kerala_chunks)

        assert summary.errors == 1
        assert summary.failed_batches[0].error_type == "CircuitOpenError"
        assert adapter.circuit_breaker_state().state == CircuitState.OPEN

        calls = embedder.calls
        with pytest.raises(CircuitOpenError) as exc_info:
            adapter.retrieve("Kerala population")
        assert exc_info.value.retry_after_seconds > 0
        assert embedder.calls == calls

    def test_reset_circuit_breaker(self, store_config, embedder, backend, kerala_chunks):
        store_config.circuit_breaker.failure_threshold = 1
        adapter = VectorStoreAdapter(store_config, embedder, backend)
        with _failing_when(embedder, "Kerala"):
            adapter.embed_and_store(kerala_chunks)

        state = adapter.reset_circuit_breaker()

        assert state.state == CircuitState.CLOSED
        assert adapter.embed_and_store(kerala_chunks).processed == 1


class TestRetrieve:
    """Tests for retrieve."""

    def test_relevant_chunk_first(self, adapter, kerala_chunks, make_chunk):
        table = make_chunk("Columns: പദ്ധതി\nപദ്ധതി is സ്കൂൾ.", source_document="budget.md", chunk_type="table")
        adapter.embed_and_store(kerala_chunks + [table])

        hits = adapter.retrieve("Kerala population", k=3, score_threshold=0.5)

        assert hits[0].chunk.text == "Kerala's population is 33 million."
        assert all(h.score >= 0.5 for h in hits)
        assert all(h.chunk.source_document == "kerala.md" for h in hits)

    def test_empty_query_rejected(self, adapter):
        with pytest.raises(ValidationError):
            adapter.retrieve("   ")

    def test_non_positive_k(self, adapter, kerala_chunks):
        adapter.embed_and_store(kerala_chunks)

        assert adapter.retrieve("Kerala", k=0) == []

    def test_threshold_filters_everything(self, adapter, kerala_chunks):
        adapter.embed_and_store(kerala_chunks)

        assert adapter.retrieve("Tamil Nadu rivers", k=5, score_threshold=0.5) == []

    def test_duplicate_chunk_returned_once(self, adapter, embedder, backend, make_chunk):
        chunk = make_chunk("Kerala population.")
        embedding = embedder.embed_query(chunk.text)
        for namespace in ("documents-a", "documents-b"):
            backend.upsert(namespace, [EmbeddedVector(chunk.id, embedding, chunk, namespace)])

        hits = adapter.retrieve("Kerala population", k=5, score_threshold=0.1)

        assert len(hits) == 1

    def test_ties_broken_by_ordinal(self, adapter, make_chunk):
        chunks = [make_chunk("Kerala population.", ordinal=1), make_chunk("Kerala population.", ordinal=0)]
        adapter.embed_and_store(chunks)

        hits = adapter.retrieve("Kerala population", k=5, score_threshold=0.1)

        assert [h.chunk.ordinal for h in hits] == [0, 1]

    def test_single_namespace(self, adapter, kerala_chunks, make_chunk):
        table = make_chunk("Kerala budget table.", source_document="budget.md", chunk_type="table")
        adapter.embed_and_store(kerala_chunks + [table])

        hits = adapter.retrieve("Kerala", k=5, score_threshold=0.1, namespace="tables-budget")

        assert [h.namespace for h in hits] == ["tables-budget"]


class TestHealthCheck:
    def test_healthy(self, adapter, kerala_chunks):
        adapter.embed_and_store(kerala_chunks)

        report = adapter.health_check()

        assert report["status"] == "healthy"
        assert report["backend"] == "memory"
        assert report["embeddingModel"] == "hashing-test"
        assert report["vectors"] == 2
        assert report["namespaces"] == 1
        assert report["circuitBreaker"]["state"] == "CLOSED"

    def test_open_breaker_unhealthy(self, store_config, embedder, backend, kerala_chunks):
        store_config.circuit_breaker.failure_threshold = 1
        adapter = VectorStoreAdapter(store_config, embedder, backend)
        with _failing_when(embedder, "Kerala"):
            adapter.embed_and_store(kerala_chunks)

        assert adapter.health_check()["status"] == "unhealthy"

    def test_backend_failure_reported(self, adapter, backend):
        with patch.object(backend, "count", side_effect=RuntimeError("disk gone")):
            report = adapter.health_check()

        assert report["status"] == "unhealthy"
        assert report["error"] == "disk gone"
