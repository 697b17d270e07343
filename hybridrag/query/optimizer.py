"""
Performance optimizer.

Decides, before the pipeline runs, which query text to retrieve with,
which cache key to use, whether the result may be cached, and a rough
processing-time estimate. Also keeps a bounded history of per-request
timings for the health/summary endpoints.
"""

import re
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional

from hybridrag.core.config import CacheConfig
from hybridrag.core.logging import get_logger
from hybridrag.query.cache import QueryCache, make_cache_key
from hybridrag.query.models import QueryAnalysis

logger = get_logger(__name__)

METRICS_HISTORY = 100

PERSONAL = re.compile(r"(?:^|\s)(?:my|i|me|mine)(?=\s|$|[?.!,'’])", re.IGNORECASE)
TIME_SENSITIVE = re.compile(r"\b(?:current|currently|latest|today|now|recent|this week)\b", re.IGNORECASE)
POLITENESS = re.compile(r"\b(?:please|could you|can you|would you)\b", re.IGNORECASE)

# Estimate components, milliseconds
BASE_TIME_MS = 1000
PER_COMPLEXITY_MS = 500
PER_DOCUMENT_MS = 50
CROSS_REFERENCE_MS = 2000
CACHE_HIT_MS = 50


@dataclass
class OptimizationPlan:
    optimized_query: str
    cache_key: str
    should_cache: bool
    estimated_time: int  # milliseconds
    cache_hit: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "optimizedQuery": self.optimized_query,
            "cacheKey": self.cache_key,
            "shouldCache": self.should_cache,
            "estimatedTime": self.estimated_time,
        }


@dataclass
class PerformanceMetrics:
    """Timings for one pipeline run, in seconds."""

    retrieval_time: float = 0.0
    synthesis_time: float = 0.0
    validation_time: float = 0.0
    total_time: float = 0.0
    documents_retrieved: int = 0
    quality_score: float = 0.0
    cached: bool = False


class PerformanceOptimizer:
    """Query planning in front of the QueryCache."""

    def __init__(
        self, cache: Optional[QueryCache] = None, config: Optional[CacheConfig] = None
    ) -> None:
        self.config = config or (cache.config if cache else CacheConfig())
        self.cache = cache or QueryCache(self.config)
        self._lock = threading.Lock()
        self._history: Deque[PerformanceMetrics] = deque(maxlen=METRICS_HISTORY)

    def optimize_query(
        self,
        query: str,
        analysis: QueryAnalysis,
        chat_history: str = "",
        namespace: str = "default",
    ) -> OptimizationPlan:
        """
        Plan a query.

        Args:
            query: User question
            analysis: Its classification
            chat_history: Prior transcript (part of the cache key)
            namespace: Search namespace (part of the cache key)

        Returns:
            OptimizationPlan
        """
        cache_key = make_cache_key(query, namespace, chat_history)
        return OptimizationPlan(
            optimized_query=self._optimize_for_retrieval(query, analysis),
            cache_key=cache_key,
            should_cache=self.config.enabled and self.should_cache_query(query),
            estimated_time=self.estimate_processing_time(analysis),
        )

    @staticmethod
    def should_cache_query(query: str) -> bool:
        """Personal and time-sensitive questions are never cached."""
        return not PERSONAL.search(query) and not TIME_SENSITIVE.search(query)

    def should_cache_result(self, quality_score: float) -> bool:
        return quality_score >= self.config.min_quality

    @staticmethod
    def estimate_processing_time(analysis: QueryAnalysis) -> int:
        return (
            BASE_TIME_MS
            + analysis.complexity * PER_COMPLEXITY_MS
            + analysis.suggested_k * PER_DOCUMENT_MS
            + (CROSS_REFERENCE_MS if analysis.requires_cross_reference else 0)
        )

    @staticmethod
    def _optimize_for_retrieval(query: str, analysis: QueryAnalysis) -> str:
        """Simple queries pass through; complex ones lose filler and lead with entities."""
        if analysis.complexity <= 2:
            return query
        stripped = " ".join(POLITENESS.sub("", query).split())
        lowered = stripped.lower()
        missing = [e for e in analysis.key_entities[:2] if e.lower() not in lowered]
        return " ".join(missing + [stripped]) if missing else stripped

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def record_metrics(self, metrics: PerformanceMetrics) -> None:
        with self._lock:
            self._history.append(metrics)

    def get_performance_summary(self) -> Dict[str, Any]:
        with self._lock:
            history = list(self._history)
        cache_stats = self.cache.get_stats()
        if not history:
            return {"requests": 0, "cache": cache_stats}

        def _avg(attr: str) -> float:
            return round(sum(getattr(m, attr) for m in history) / len(history), 4)

        return {
            "requests": len(history),
            "average_total_time": _avg("total_time"),
            "average_retrieval_time": _avg("retrieval_time"),
            "average_synthesis_time": _avg("synthesis_time"),
            "average_validation_time": _avg("validation_time"),
            "average_quality": _avg("quality_score"),
            "average_documents": _avg("documents_retrieved"),
            "cached_responses": sum(1 for m in history if m.cached),
            "cache": cache_stats,
        }
