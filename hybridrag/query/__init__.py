"""
Query processing: analysis, expansion, caching, planning and memory.
"""

from hybridrag.query.analyzer import QueryAnalyzer, extract_entities
from hybridrag.query.cache import QueryCache, make_cache_key
from hybridrag.query.expander import QueryExpander
from hybridrag.query.memory import ConversationContext, ConversationMemory, ConversationTurn
from hybridrag.query.models import QueryAnalysis, QueryExpansion, QueryType
from hybridrag.query.optimizer import OptimizationPlan, PerformanceMetrics, PerformanceOptimizer

__all__ = [
    "QueryAnalyzer",
    "extract_entities",
    "QueryCache",
    "make_cache_key",
    "QueryExpander",
    "ConversationContext",
    "ConversationMemory",
    "ConversationTurn",
    "QueryAnalysis",
    "QueryExpansion",
    "QueryType",
    "OptimizationPlan",
    "PerformanceMetrics",
    "PerformanceOptimizer",
]
