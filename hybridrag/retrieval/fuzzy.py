"""
Fuzzy matching over the lexical index vocabulary.

Each query term is matched against indexed terms with RapidFuzz's weighted
ratio, so misspellings ("scool", "panchayt"), truncated words ("popul") and
inflected forms still reach chunks that BM25 misses. A chunk's score is the
mean, over query terms, of the best similarity among its close terms, in
[0, 1].
"""

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from rapidfuzz import fuzz, process

from hybridrag.chunking.models import Chunk
from hybridrag.core.config import FuzzyConfig
from hybridrag.retrieval.bm25 import LexicalIndex, index_terms

MAX_TERM_MATCHES = 5


@dataclass(frozen=True)
class FuzzyHit:
    chunk: Chunk
    score: float


class FuzzyMatcher:
    """Approximate term matching backed by a LexicalIndex."""

    def __init__(self, index: LexicalIndex, config: Optional[FuzzyConfig] = None) -> None:
        self.index = index
        self.config = config or FuzzyConfig()
        self._lock = threading.Lock()
        self._cache_version = -1
        self._term_cache: Dict[str, List[Tuple[str, float]]] = {}

    def _close_terms(self, term: str) -> List[Tuple[str, float]]:
        with self._lock:
            if self._cache_version != self.index.version:
                self._term_cache.clear()
                self._cache_version = self.index.version
            cached = self._term_cache.get(term)
        if cached is not None:
            return cached

        matches = process.extract(
            term,
            self.index.vocabulary(),
            scorer=fuzz.WRatio,
            limit=MAX_TERM_MATCHES,
            score_cutoff=self.config.term_cutoff * 100,
        )
        scored = [(match, score / 100) for match, score, _ in matches]
        with self._lock:
            self._term_cache[term] = scored
        return scored

    def search(self, query: str, k: int = 10) -> List[FuzzyHit]:
        """Chunks whose terms approximately match the query, best first."""
        if not self.config.enabled or k <= 0 or not self.index.is_ready:
            return []
        query_terms = list(dict.fromkeys(index_terms(query)))
        if not query_terms:
            return []

        # chunk_id -> {query_term: best ratio}
        best: Dict[str, Dict[str, float]] = {}
        for term in query_terms:
            for match, ratio in self._close_terms(term):
                for chunk_id in self.index.postings(match):
                    per_term = best.setdefault(chunk_id, {})
                    per_term[term] = max(per_term.get(term, 0.0), ratio)

        hits = []
        for chunk_id, per_term in best.items():
            score = sum(per_term.values()) / len(query_terms)
            if score < self.config.min_score:
                continue
            chunk = self.index.get_chunk(chunk_id)
            if chunk is not None:
                hits.append(FuzzyHit(chunk=chunk, score=score))

        hits.sort(key=lambda h: (-h.score, h.chunk.ordinal, h.chunk.id))
        return hits[:k]
