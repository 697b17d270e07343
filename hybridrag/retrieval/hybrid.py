"""
Hybrid Search: BM25 + Semantic + Fuzzy Fusion.

Combines keyword (BM25), vector (semantic) and approximate-term (fuzzy)
retrieval. BM25 catches exact terminology, semantic search finds
conceptually similar passages with different wording, and fuzzy matching
recovers misspelled or inflected terms.

Architecture Context
--------------------
    RAGService.call_chain(question)
            ↓
    HybridSearchEngine.intelligent_search(query, analysis)
        ├── LexicalIndex.search()          ← BM25 over chunk text
        ├── VectorStoreAdapter.retrieve()  ← cosine similarity
        ├── FuzzyMatcher.search()          ← RapidFuzz term matching
        └── fuse_results()                 ← weighted score fusion
            ↓
    HybridSearchResponse(documents, results, search_metadata)

Strategy Selection
------------------
The query analysis picks a named weight profile:

- FACTUAL with entities       → keyword-heavy
- ANALYTICAL or complexity > 3 → semantic-heavy
- COMPARATIVE or complexity 2  → balanced
- otherwise                    → adaptive (derived from entities/complexity)

Fallbacks
---------
- Lexical index not built yet: semantic results only ("semantic-fallback").
  A background build is started on first use.
- Vector store unavailable (circuit open) with a built lexical index:
  BM25 and fuzzy results only ("lexical-fallback").
- Both unavailable: the vector store error propagates.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from concurrent.futures import as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from hybridrag.chunking.models import Chunk
from hybridrag.core.circuit_breaker import CircuitState
from hybridrag.core.config import FusionConfig, FusionWeights, RetrievalConfig
from hybridrag.core.exceptions import SearchError, ValidationError
from hybridrag.core.logging import get_logger
from hybridrag.query.models import QueryAnalysis, QueryType
from hybridrag.retrieval.bm25 import LexicalIndex
from hybridrag.retrieval.fuzzy import FuzzyMatcher
from hybridrag.storage.namespace import determine_namespace
from hybridrag.storage.vector_store import VectorStoreAdapter

logger = get_logger(__name__)

MAX_SEARCH_TIMEOUT_SECONDS = 60.0

# chunk_id -> (chunk, best score across queries)
ScoreMap = Dict[str, Tuple[Chunk, float]]


@dataclass
class SearchResult:
    """A fused search result."""

    document: Chunk
    bm25_score: float = 0.0
    semantic_score: float = 0.0
    fuse_score: float = 0.0
    hybrid_score: float = 0.0
    search_method: str = "hybrid"  # hybrid | bm25 | semantic | fuse

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunkId": self.document.id,
            "source": self.document.source_document,
            "bm25Score": round(self.bm25_score, 4),
            "semanticScore": round(self.semantic_score, 4),
            "fuseScore": round(self.fuse_score, 4),
            "hybridScore": round(self.hybrid_score, 4),
            "searchMethod": self.search_method,
        }


@dataclass
class HybridSearchResponse:
    documents: List[Chunk] = field(default_factory=list)
    results: List[SearchResult] = field(default_factory=list)
    search_metadata: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Strategy and weights
# ---------------------------------------------------------------------------


def select_strategy(analysis: QueryAnalysis) -> str:
    """Pick a fusion profile name from the query analysis."""
    if analysis.query_type == QueryType.FACTUAL and analysis.key_entities:
        return "keyword-heavy"
    if analysis.query_type == QueryType.ANALYTICAL or analysis.complexity > 3:
        return "semantic-heavy"
    if analysis.query_type == QueryType.COMPARATIVE or analysis.complexity == 2:
        return "balanced"
    return "adaptive"


def weights_for(
    strategy: str, analysis: QueryAnalysis, fusion: Optional[FusionConfig] = None
) -> FusionWeights:
    """Weights for a strategy; 'adaptive' is derived from the analysis."""
    fusion = fusion or FusionConfig()
    profile = fusion.profiles.get(strategy)
    if profile is not None:
        return FusionWeights(profile.bm25, profile.semantic, profile.fuse).normalize()

    entity_ratio = len(analysis.key_entities) / 10
    bm25 = min(0.6, 0.3 + entity_ratio * 0.3)
    semantic = min(0.7, 0.4 + (0.3 if analysis.complexity > 3 else 0.1))
    fuse = max(0.1, 1 - bm25 - semantic)
    return FusionWeights(bm25, semantic, fuse).normalize()


def fuse_results(
    bm25: ScoreMap,
    semantic: ScoreMap,
    fuzzy: ScoreMap,
    weights: FusionWeights,
    score_threshold: float,
) -> List[SearchResult]:
    """
    Weighted fusion of the three score maps.

    BM25 scores are normalized by their maximum; semantic and fuzzy scores
    are already in [0, 1]. Results below the threshold are dropped.

    Returns:
        Results sorted by hybrid score, ties broken by semantic score and
        then chunk ordinal.
    """
    bm25_max = max((score for _, score in bm25.values()), default=0.0)
    combined: Dict[str, SearchResult] = {}
    methods: Dict[str, List[str]] = {}

    def _entry(chunk: Chunk, method: str) -> SearchResult:
        result = combined.get(chunk.id)
        if result is None:
            result = combined[chunk.id] = SearchResult(document=chunk)
        methods.setdefault(chunk.id, []).append(method)
        return result

    for chunk, score in bm25.values():
        _entry(chunk, "bm25").bm25_score = score / bm25_max if bm25_max > 0 else 0.0
    for chunk, score in semantic.values():
        _entry(chunk, "semantic").semantic_score = max(0.0, min(1.0, score))
    for chunk, score in fuzzy.values():
        _entry(chunk, "fuse").fuse_score = max(0.0, min(1.0, score))

    results = []
    for chunk_id, result in combined.items():
        result.hybrid_score = (
            weights.bm25 * result.bm25_score
            + weights.semantic * result.semantic_score
            + weights.fuse * result.fuse_score
        )
        found_by = methods[chunk_id]
        result.search_method = found_by[0] if len(found_by) == 1 else "hybrid"
        if result.hybrid_score >= score_threshold:
            results.append(result)

    results.sort(
        key=lambda r: (-r.hybrid_score, -r.semantic_score, r.document.ordinal, r.document.id)
    )
    return results


def _keep_best(scores: ScoreMap, chunk: Chunk, score: float) -> None:
    existing = scores.get(chunk.id)
    if existing is None or score > existing[1]:
        scores[chunk.id] = (chunk, score)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class HybridSearchEngine:
    """
    Hybrid retrieval over a vector store and a lexical index.

    Features:
    - Concurrent lexical, semantic and fuzzy search with a timeout
    - Strategy-dependent weighted fusion
    - Best score per chunk across expanded queries
    - Semantic-only and lexical-only fallbacks
    """

    def __init__(
        self,
        vector_store: VectorStoreAdapter,
        config: Optional[RetrievalConfig] = None,
        lexical: Optional[LexicalIndex] = None,
        fuzzy: Optional[FuzzyMatcher] = None,
    ) -> None:
        self.vector_store = vector_store
        self.config = config or RetrievalConfig()
        self.lexical = lexical or LexicalIndex(self.config.lexical)
        self.fuzzy = fuzzy or FuzzyMatcher(self.lexical, self.config.fuzzy)
        self._build_lock = threading.Lock()
        self._build_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    def build_index(self) -> bool:
        """Build the lexical index from every stored chunk."""
        return self.lexical.rebuild_from(self.vector_store.iter_chunks)

    def ensure_index_background(self) -> Optional[threading.Thread]:
        """Start a background build unless the index is built or building."""
        with self._build_lock:
            if self.lexical.is_built or self.lexical.is_building:
                return None
            if self._build_thread is not None and self._build_thread.is_alive():
                return None
            thread = threading.Thread(
                target=self._build_in_background, name="lexical-index-build", daemon=True
            )
            self._build_thread = thread
            thread.start()
        logger.info("Started background lexical index build")
        return thread

    def _build_in_background(self) -> None:
        try:
            self.build_index()
        except Exception as e:
            logger.error("Background lexical index build failed", error=str(e))

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def intelligent_search(
        self,
        query: str,
        analysis: QueryAnalysis,
        k: int = 6,
        score_threshold: float = 0.1,
        enable_fuse: bool = True,
        expanded_queries: Optional[Sequence[str]] = None,
        namespace: Optional[str] = None,
    ) -> HybridSearchResponse:
        """
        Run hybrid search for a query and its expansions.

        Args:
            query: Original user query
            analysis: Output of QueryAnalyzer.classify_query()
            k: Maximum results
            score_threshold: Minimum fused score
            enable_fuse: Include fuzzy matching
            expanded_queries: Alternative phrasings from the QueryExpander
            namespace: Restrict to one namespace

        Returns:
            HybridSearchResponse with at most k results

        Raises:
            ValidationError: Empty query or non-positive k
            CircuitOpenError: Vector store unavailable and no lexical index
        """
        if not query or not query.strip():
            raise ValidationError("Query must not be empty")
        if k <= 0:
            raise ValidationError(f"k must be positive, got {k}")

        start = time.perf_counter()
        queries = self._query_set(query, expanded_queries)
        lexical_ready = self.lexical.is_ready
        if not self.lexical.is_built:
            self.ensure_index_background()

        strategy = select_strategy(analysis)
        weights = weights_for(strategy, analysis, self.config.fusion)
        search_strategy = strategy if lexical_ready else "semantic-fallback"

        tasks: Dict[str, Callable[[], ScoreMap]] = {
            "semantic": lambda: self._semantic_search(queries, k * 3, namespace),
        }
        if lexical_ready:
            tasks["bm25"] = lambda: self._lexical_search(queries, k * 2, namespace)
            if enable_fuse and self.config.enable_fuse:
                tasks["fuse"] = lambda: self._fuzzy_search(queries, k * 2, namespace)

        outcomes = self._run_parallel(tasks)

        semantic = outcomes.get("semantic", {})
        if isinstance(semantic, Exception):
            if not lexical_ready:
                raise semantic
            logger.warning("Semantic search unavailable, using lexical results", error=str(semantic))
            semantic = {}
            search_strategy = "lexical-fallback"
            weights = FusionWeights(weights.bm25, 0.0, weights.fuse).normalize()
        if not lexical_ready:
            weights = FusionWeights(0.0, 1.0, 0.0)

        bm25 = self._successful(outcomes, "bm25")
        fuzzy = self._successful(outcomes, "fuse")

        ranked = fuse_results(bm25, semantic, fuzzy, weights, score_threshold)
        final = ranked[:k]
        search_time = time.perf_counter() - start

        metadata = {
            "total_results": len(ranked),
            "bm25_results": len(bm25),
            "semantic_results": len(semantic),
            "fuse_results": len(fuzzy),
            "search_time": round(search_time, 4),
            "search_strategy": search_strategy,
            "weights": {
                "bm25": round(weights.bm25, 4),
                "semantic": round(weights.semantic, 4),
                "fuse": round(weights.fuse, 4),
            },
            "queries": len(queries),
        }
        logger.info(
            "Hybrid search complete",
            results=len(final),
            strategy=search_strategy,
            seconds=round(search_time, 3),
        )
        return HybridSearchResponse(
            documents=[r.document for r in final], results=final, search_metadata=metadata
        )

    def _query_set(self, query: str, expanded: Optional[Sequence[str]]) -> List[str]:
        queries = [query.strip()]
        seen = {queries[0].lower()}
        for candidate in expanded or ():
            text = (candidate or "").strip()
            if text and text.lower() not in seen:
                seen.add(text.lower())
                queries.append(text)
        return queries[: max(1, self.config.max_expanded_queries)]

    def _run_parallel(self, tasks: Dict[str, Callable[[], ScoreMap]]) -> Dict[str, Any]:
        """Run searches concurrently; failures and timeouts become exceptions in the map."""
        timeout = min(self.config.search_timeout_seconds, MAX_SEARCH_TIMEOUT_SECONDS)
        outcomes: Dict[str, Any] = {}
        executor = ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="hybrid-search")
        try:
            futures = {executor.submit(func): name for name, func in tasks.items()}
            try:
                for future in as_completed(futures, timeout=timeout):
                    name = futures[future]
                    try:
                        outcomes[name] = future.result()
                    except Exception as e:
                        outcomes[name] = e
            except FuturesTimeout:
                for future, name in futures.items():
                    if name not in outcomes:
                        logger.warning(f"{name} search timed out after {timeout}s")
                        outcomes[name] = SearchError(f"{name} search timed out after {timeout}s")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return outcomes

    @staticmethod
    def _successful(outcomes: Dict[str, Any], name: str) -> ScoreMap:
        value = outcomes.get(name, {})
        if isinstance(value, Exception):
            logger.warning(f"{name} search failed", error=str(value))
            return {}
        return value

    def _in_namespace(self, chunk: Chunk, namespace: Optional[str]) -> bool:
        return namespace is None or determine_namespace(chunk.to_metadata()) == namespace

    def _semantic_search(
        self, queries: Sequence[str], n: int, namespace: Optional[str]
    ) -> ScoreMap:
        scores: ScoreMap = {}
        for query in queries:
            hits = self.vector_store.retrieve(
                query,
                k=n,
                score_threshold=self.config.semantic_threshold,
                namespace=namespace,
            )
            for hit in hits:
                _keep_best(scores, hit.chunk, hit.score)
        return scores

    def _lexical_search(
        self, queries: Sequence[str], n: int, namespace: Optional[str]
    ) -> ScoreMap:
        scores: ScoreMap = {}
        for query in queries:
            for hit in self.lexical.search(query, n):
                if self._in_namespace(hit.chunk, namespace):
                    _keep_best(scores, hit.chunk, hit.score)
        return scores

    def _fuzzy_search(
        self, queries: Sequence[str], n: int, namespace: Optional[str]
    ) -> ScoreMap:
        scores: ScoreMap = {}
        for query in queries:
            for hit in self.fuzzy.search(query, n):
                if self._in_namespace(hit.chunk, namespace):
                    _keep_best(scores, hit.chunk, hit.score)
        return scores

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health_check(self) -> Dict[str, Any]:
        """
        Combined health of the lexical index and the vector store breaker.

        degraded: lexical index unbuilt, empty or stale, or breaker OPEN.
        unhealthy: both.
        """
        lexical = self.lexical.health_check()
        breaker = self.vector_store.circuit_breaker_state()

        issues = []
        lexical_ok = lexical["status"] == "healthy"
        vector_ok = breaker.state != CircuitState.OPEN
        if not lexical_ok:
            issues.append(
                "Search index is stale"
                if lexical["status"] == "degraded"
                else "Search index not built or empty"
            )
        if not vector_ok:
            issues.append("Vector store circuit breaker is open")

        if lexical_ok and vector_ok:
            status = "healthy"
        elif lexical_ok or vector_ok:
            status = "degraded"
        else:
            status = "unhealthy"

        return {
            "status": status,
            "issues": issues,
            "stats": {
                **lexical["stats"],
                "is_building": self.lexical.is_building,
                "circuit_breaker": breaker.to_dict(),
            },
        }
