"""
Shared pytest fixtures and configuration for HybridRAG tests.

This file is automatically discovered by pytest and provides fixtures
that can be used across all test files.

Fixture Organization
--------------------
- **config**: Config with the LLM disabled and no retry sleeps
- **token_counter**: Whitespace word counter (no tiktoken download)
- **embedder**: Deterministic hashing embedder (no model download)
- **fake_llm**: Scripted LLMClient with call counting
- **service**: RAGService over the in-memory backend
- **make_chunk**: Chunk builder

No fixture touches the network or loads a model.
"""

import hashlib
import math
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Sequence

import pytest

from hybridrag.chunking.models import Chunk, compute_chunk_id, compute_content_hash
from hybridrag.chunking.tokenizer import TokenCounter
from hybridrag.core.config import Config
from hybridrag.llm.base import GenerationConfig, LLMClient
from hybridrag.pipeline.service import RAGService
from hybridrag.shared.text import content_tokens
from hybridrag.storage.embeddings import EmbeddingProvider
from hybridrag.storage.memory import InMemoryVectorBackend


# ============================================================================
# Test Doubles
# ============================================================================


class WordTokenCounter(TokenCounter):
    """Counts whitespace-separated words."""

    def count(self, text: str) -> int:
        return len(text.split())


class HashingEmbedder(EmbeddingProvider):
    """Bag-of-words embedder: each content token hashes to one dimension.

    Texts sharing content words get positive cosine similarity; texts
    sharing none are orthogonal (barring hash collisions).
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension
        self.calls = 0

    @property
    def model_name(self) -> str:
        return "hashing-test"

    def _embed(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for token in content_tokens(text):
            digest = hashlib.md5(token.encode("utf-8")).hexdigest()
            vector[int(digest, 16) % self.dimension] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector] if norm else vector

    def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls += 1
        return [self._embed(text) for text in texts]


class FakeLLM(LLMClient):
    """Scripted LLM client.

    Returns ``reply`` (or raises ``error``) and counts calls.
    """

    def __init__(
        self,
        reply: str = "",
        error: Optional[Exception] = None,
        available: bool = True,
        stream_pieces: Optional[List[str]] = None,
    ) -> None:
        self.reply = reply
        self.error = error
        self.available = available
        self.stream_pieces = stream_pieces
        self.calls: List[dict] = []

    @property
    def model_name(self) -> str:
        return "fake-llm"

    def is_available(self) -> bool:
        return self.available

    def generate_with_context(
        self,
        system_prompt: str,
        user_prompt: str,
        context: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
        **kwargs: Any,
    ) -> str:
        self.calls.append({"system": system_prompt, "user": user_prompt, "context": context})
        if self.error is not None:
            raise self.error
        return self.reply

    def stream_generate_with_context(
        self,
        system_prompt: str,
        user_prompt: str,
        context: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
        **kwargs: Any,
    ) -> Iterator[str]:
        if self.stream_pieces is None:
            yield from super().stream_generate_with_context(
                system_prompt, user_prompt, context, config
            )
            return
        self.calls.append({"system": system_prompt, "user": user_prompt, "context": context})
        for piece in self.stream_pieces:
            if isinstance(piece, Exception):
                raise piece
            yield piece


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config for tests: no LLM, English fallbacks, instant retries."""
    cfg = Config()
    cfg._base_path = tmp_path
    cfg.llm.default_provider = "none"
    cfg.retrieval.semantic_threshold = 0.2
    cfg.vector_store.retry.base_delay = 0.0
    cfg.vector_store.retry.max_delay = 0.0
    cfg.synthesis.language = "en"
    cfg.cache.enabled = True
    return cfg


@pytest.fixture
def token_counter() -> WordTokenCounter:
    return WordTokenCounter()


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM(reply="Kerala's population is 33 million [1].")


@pytest.fixture
def make_llm() -> Callable[..., FakeLLM]:
    """FakeLLM class, for tests that script their own replies."""
    return FakeLLM


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def service(config: Config, embedder: HashingEmbedder, token_counter: WordTokenCounter) -> RAGService:
    """Initialized service with an empty in-memory store and no LLM."""
    svc = RAGService(
        config,
        embedder=embedder,
        backend=InMemoryVectorBackend(),
        llm=None,
        token_counter=token_counter,
    )
    svc.initialize()
    return svc


@pytest.fixture
def make_service(
    config: Config, embedder: HashingEmbedder, token_counter: WordTokenCounter
) -> Callable[..., RAGService]:
    """Build an initialized service with a chosen LLM client or backend."""

    def _make(llm: Optional[LLMClient] = None, backend: Any = None) -> RAGService:
        svc = RAGService(
            config,
            embedder=embedder,
            backend=backend or InMemoryVectorBackend(),
            llm=llm,
            token_counter=token_counter,
        )
        svc.initialize()
        return svc

    return _make


# ============================================================================
# Chunk Fixtures
# ============================================================================


@pytest.fixture
def make_chunk() -> Callable[..., Chunk]:
    """Factory for Chunk objects with consistent ids and hashes.

    Example:
        def test_search(make_chunk):
            chunk = make_chunk("Kerala's population is 33 million.")
    """

    def _make(
        text: str,
        source_document: str = "doc.md",
        ordinal: int = 0,
        chunk_type: str = "text",
        headings_path: tuple = (),
        quality_score: float = 0.8,
        semantic_tags: tuple = (),
    ) -> Chunk:
        content_hash = compute_content_hash(text)
        return Chunk(
            id=compute_chunk_id(source_document, ordinal, content_hash),
            text=text,
            source_document=source_document,
            ordinal=ordinal,
            token_count=len(text.split()),
            headings_path=headings_path,
            chunk_type=chunk_type,
            has_table=chunk_type == "table",
            has_code=chunk_type == "code",
            quality_score=quality_score,
            semantic_tags=semantic_tags,
            source_text=text,
            content_hash=content_hash,
        )

    return _make


# ============================================================================
# Sample Documents
# ============================================================================

KERALA_DOC = "Kerala's population is 33 million."

BUDGET_DOC = """# Ward Projects

| പദ്ധതി | ബജറ്റ് |
|---|---|
| സ്കൂൾ കെട്ടിടം | ₹30 ലക്ഷം |
"""


@pytest.fixture
def kerala_doc() -> str:
    return KERALA_DOC


@pytest.fixture
def budget_doc() -> str:
    return BUDGET_DOC
