"""Query-side data models shared by the analyzer, expander and search engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class QueryType(str, Enum):
    FACTUAL = "FACTUAL"
    COMPARATIVE = "COMPARATIVE"
    ANALYTICAL = "ANALYTICAL"
    INFERENTIAL = "INFERENTIAL"
    SYNTHETIC = "SYNTHETIC"


@dataclass
class QueryAnalysis:
    """Surface-feature classification of a question."""

    query_type: QueryType
    complexity: int  # 1..5
    key_entities: List[str] = field(default_factory=list)
    requires_cross_reference: bool = False
    data_types_needed: List[str] = field(default_factory=list)
    reasoning_steps: List[str] = field(default_factory=list)
    suggested_k: int = 6

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queryType": self.query_type.value,
            "complexity": self.complexity,
            "keyEntities": list(self.key_entities),
            "requiresCrossReference": self.requires_cross_reference,
            "dataTypesNeeded": list(self.data_types_needed),
            "reasoningSteps": list(self.reasoning_steps),
            "suggestedK": self.suggested_k,
        }


@dataclass
class QueryExpansion:
    """Alternative phrasings of a query used to widen recall."""

    original_query: str
    expanded_queries: List[str] = field(default_factory=list)
    synonyms: List[str] = field(default_factory=list)
    related_concepts: List[str] = field(default_factory=list)
    sub_queries: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalQuery": self.original_query,
            "expandedQueries": list(self.expanded_queries),
            "synonyms": list(self.synonyms),
            "relatedConcepts": list(self.related_concepts),
            "subQueries": list(self.sub_queries),
        }
