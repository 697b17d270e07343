"""
Retrieval configuration.

Provides configuration for lexical (BM25), semantic and fuzzy search and
the per-strategy fusion weights used by the hybrid search engine.
"""

from dataclasses import dataclass, field
from typing import Dict


@dataclass
class FusionWeights:
    """Weights for one fusion strategy. Normalized to sum to 1."""

    bm25: float = 0.4
    semantic: float = 0.4
    fuse: float = 0.2

    def normalize(self) -> "FusionWeights":
        total = self.bm25 + self.semantic + self.fuse
        if total <= 0:
            self.bm25, self.semantic, self.fuse = 0.4, 0.4, 0.2
            return self
        self.bm25 /= total
        self.semantic /= total
        self.fuse /= total
        return self


def _default_profiles() -> Dict[str, FusionWeights]:
    return {
        "keyword-heavy": FusionWeights(bm25=0.6, semantic=0.3, fuse=0.1),
        "semantic-heavy": FusionWeights(bm25=0.2, semantic=0.7, fuse=0.1),
        "balanced": FusionWeights(bm25=0.4, semantic=0.4, fuse=0.2),
    }


@dataclass
class FusionConfig:
    """Named fusion weight profiles selected by query type."""

    profiles: Dict[str, FusionWeights] = field(default_factory=_default_profiles)


@dataclass
class LexicalConfig:
    """BM25 parameters."""

    k1: float = 1.2
    b: float = 0.75
    delta: float = 0.0  # BM25+ lower bound; 0 gives classic BM25
    stale_after_hours: float = 24.0


@dataclass
class FuzzyConfig:
    """RapidFuzz-based approximate matching."""

    enabled: bool = True
    term_cutoff: float = 0.8  # Minimum weighted ratio (0-1) for a term match
    min_score: float = 0.3


@dataclass
class RetrievalConfig:
    """Retrieval configuration."""

    top_k: int = 6
    score_threshold: float = 0.1  # Minimum fused score
    semantic_threshold: float = 0.5  # Minimum cosine similarity for semantic hits
    enable_fuse: bool = True
    max_expanded_queries: int = 6
    search_timeout_seconds: float = 10.0
    lexical: LexicalConfig = field(default_factory=LexicalConfig)
    fuzzy: FuzzyConfig = field(default_factory=FuzzyConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
