"""
Retrieval: BM25 lexical index, fuzzy matching and hybrid fusion.
"""

from hybridrag.retrieval.bm25 import LexicalHit, LexicalIndex, index_terms
from hybridrag.retrieval.fuzzy import FuzzyHit, FuzzyMatcher
from hybridrag.retrieval.hybrid import (
    HybridSearchEngine,
    HybridSearchResponse,
    SearchResult,
    fuse_results,
    select_strategy,
    weights_for,
)

__all__ = [
    "LexicalHit",
    "LexicalIndex",
    "index_terms",
    "FuzzyHit",
    "FuzzyMatcher",
    "HybridSearchEngine",
    "HybridSearchResponse",
    "SearchResult",
    "fuse_results",
    "select_strategy",
    "weights_for",
]
