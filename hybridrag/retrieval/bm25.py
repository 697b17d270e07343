"""
BM25 lexical index.

Keyword retrieval over chunk text using Okapi BM25 (optionally BM25+ via a
non-zero delta). The index is built once from the vector store's chunks and
maintained incrementally as documents are added or removed.

Only one full build runs at a time; a build requested while another is in
flight returns immediately with False.
"""

import math
import threading
import time
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from hybridrag.chunking.models import Chunk
from hybridrag.core.config import LexicalConfig
from hybridrag.core.logging import get_logger
from hybridrag.shared.text import STOP_WORDS, tokenize

logger = get_logger(__name__)


@dataclass(frozen=True)
class LexicalHit:
    """A BM25 match."""

    chunk: Chunk
    score: float


def index_terms(text: str) -> List[str]:
    """Tokens used for indexing and querying: no stop words, no pure numbers."""
    return [t for t in tokenize(text) if t not in STOP_WORDS]


class LexicalIndex:
    """
    In-memory BM25 index over chunks.

    All reads and writes hold one re-entrant lock; full builds compute the
    new postings outside the lock and swap them in.
    """

    def __init__(
        self,
        config: Optional[LexicalConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or LexicalConfig()
        self._clock = clock
        self._lock = threading.RLock()
        self._building = threading.Event()

        self._chunks: Dict[str, Chunk] = {}  # chunk_id -> chunk
        self._doc_lengths: Dict[str, int] = {}  # chunk_id -> term count
        self._term_freqs: Dict[str, Dict[str, int]] = {}  # term -> {chunk_id: tf}
        self._total_length = 0
        self._built = False
        self._last_update: Optional[float] = None
        self._version = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_built(self) -> bool:
        return self._built

    @property
    def is_building(self) -> bool:
        return self._building.is_set()

    @property
    def is_ready(self) -> bool:
        """Built and holding at least one chunk."""
        with self._lock:
            return self._built and bool(self._chunks)

    @property
    def version(self) -> int:
        """Incremented on every content change."""
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._chunks)

    def vocabulary(self) -> List[str]:
        with self._lock:
            return list(self._term_freqs)

    def postings(self, term: str) -> Dict[str, int]:
        with self._lock:
            return dict(self._term_freqs.get(term, {}))

    def get_chunk(self, chunk_id: str) -> Optional[Chunk]:
        with self._lock:
            return self._chunks.get(chunk_id)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def try_begin_build(self) -> bool:
        """Claim the single build slot; False when a build is already running."""
        with self._lock:
            if self._building.is_set():
                return False
            self._building.set()
            return True

    def build(self, chunks: Iterable[Chunk]) -> bool:
        """Replace the index contents with ``chunks``.

        Returns:
            True if this call built the index, False if another build was
            already in flight.
        """
        return self.rebuild_from(lambda: chunks)

    def rebuild_from(self, loader: Callable[[], Iterable[Chunk]]) -> bool:
        """Build from a chunk loader, e.g. ``adapter.iter_chunks``."""
        if not self.try_begin_build():
            logger.debug("Lexical index build already in progress")
            return False
        start = time.perf_counter()
        try:
            chunks: Dict[str, Chunk] = {}
            lengths: Dict[str, int] = {}
            postings: Dict[str, Dict[str, int]] = {}
            for chunk in loader():
                chunks[chunk.id] = chunk
                terms = Counter(index_terms(chunk.text))
                lengths[chunk.id] = sum(terms.values())
                for term, freq in terms.items():
                    postings.setdefault(term, {})[chunk.id] = freq

            with self._lock:
                self._chunks = chunks
                self._doc_lengths = lengths
                self._term_freqs = postings
                self._total_length = sum(lengths.values())
                self._built = True
                self._last_update = self._clock()
                self._version += 1
        finally:
            self._building.clear()

        logger.info(
            "Built lexical index",
            chunks=len(chunks),
            terms=len(postings),
            seconds=round(time.perf_counter() - start, 3),
        )
        return True

    def add_chunks(self, chunks: Sequence[Chunk]) -> int:
        """Index chunks incrementally; existing ids are replaced."""
        with self._lock:
            for chunk in chunks:
                if chunk.id in self._chunks:
                    self._remove(chunk.id)
                self._add(chunk)
            if chunks:
                self._built = True
                self._last_update = self._clock()
                self._version += 1
        return len(chunks)

    def remove_chunks(self, chunk_ids: Iterable[str]) -> int:
        removed = 0
        with self._lock:
            for chunk_id in chunk_ids:
                if chunk_id in self._chunks:
                    self._remove(chunk_id)
                    removed += 1
            if removed:
                self._last_update = self._clock()
                self._version += 1
        return removed

    def remove_document(self, source_document: str) -> int:
        """Drop every chunk of a document."""
        with self._lock:
            ids = [
                cid
                for cid, chunk in self._chunks.items()
                if chunk.source_document == source_document
            ]
            return self.remove_chunks(ids)

    def _add(self, chunk: Chunk) -> None:
        terms = Counter(index_terms(chunk.text))
        self._chunks[chunk.id] = chunk
        self._doc_lengths[chunk.id] = sum(terms.values())
        self._total_length += self._doc_lengths[chunk.id]
        for term, freq in terms.items():
            self._term_freqs.setdefault(term, {})[chunk.id] = freq

    def _remove(self, chunk_id: str) -> None:
        chunk = self._chunks.pop(chunk_id)
        self._total_length -= self._doc_lengths.pop(chunk_id, 0)
        for term in set(index_terms(chunk.text)):
            postings = self._term_freqs.get(term)
            if postings is None:
                continue
            postings.pop(chunk_id, None)
            if not postings:
                del self._term_freqs[term]

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: str, k: int = 10) -> List[LexicalHit]:
        """
        Score chunks containing any query term.

        Args:
            query: Free-text query
            k: Maximum hits

        Returns:
            Hits with score > 0, highest first (ties by ordinal)
        """
        query_terms = index_terms(query)
        if not query_terms or k <= 0:
            return []

        with self._lock:
            candidates = self._find_candidates(query_terms)
            scored = [
                (self._chunks[cid], self._score(query_terms, cid)) for cid in candidates
            ]

        hits = [LexicalHit(chunk=c, score=s) for c, s in scored if s > 0]
        hits.sort(key=lambda h: (-h.score, h.chunk.ordinal, h.chunk.id))
        return hits[:k]

    def _find_candidates(self, query_terms: List[str]) -> Set[str]:
        candidates: Set[str] = set()
        for term in query_terms:
            candidates.update(self._term_freqs.get(term, {}))
        return candidates

    def _score(self, query_terms: List[str], chunk_id: str) -> float:
        n_docs = len(self._chunks)
        avg_length = self._total_length / n_docs if n_docs else 1.0
        doc_length = self._doc_lengths.get(chunk_id, 0)
        k1, b, delta = self.config.k1, self.config.b, self.config.delta

        score = 0.0
        for term in query_terms:
            postings = self._term_freqs.get(term)
            if not postings or chunk_id not in postings:
                continue
            tf = postings[chunk_id]
            df = len(postings)
            idf = math.log((n_docs - df + 0.5) / (df + 0.5) + 1)
            length_norm = 1 - b + b * (doc_length / avg_length if avg_length else 1.0)
            score += idf * ((tf * (k1 + 1)) / (tf + k1 * length_norm) + delta)
        return score

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, object]:
        with self._lock:
            n_docs = len(self._chunks)
            return {
                "is_built": self._built,
                "total_documents": n_docs,
                "unique_terms": len(self._term_freqs),
                "average_doc_length": round(self._total_length / n_docs, 2) if n_docs else 0.0,
                "last_update": self._last_update,
            }

    def is_stale(self) -> bool:
        if self._last_update is None:
            return False
        age = self._clock() - self._last_update
        return age > self.config.stale_after_hours * 3600

    def health_check(self) -> Dict[str, object]:
        """unhealthy when unbuilt or empty, degraded when stale."""
        stats = self.stats()
        if not stats["is_built"] or not stats["total_documents"]:
            status = "unhealthy"
        elif self.is_stale():
            status = "degraded"
        else:
            status = "healthy"
        return {"status": status, "stats": stats}
