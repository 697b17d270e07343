"""Pipeline result and streaming event types."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from hybridrag.query.models import QueryAnalysis
from hybridrag.synthesis.synthesizer import SourceAttribution
from hybridrag.synthesis.validator import ValidationResult

# Stream event types, in emission order
SEARCH_START = "search_start"
SEARCH_COMPLETE = "search_complete"
CONTENT = "content"
DONE = "done"
ERROR = "error"

TERMINAL_EVENTS = frozenset({DONE, ERROR})


@dataclass
class ChainResult:
    """
    Complete answer to one question.

    ``cached`` and ``cache_timestamp`` describe where the result came from,
    not what it says, so they do not take part in equality.
    """

    text: str
    analysis: QueryAnalysis
    quality: ValidationResult
    sources: List[SourceAttribution] = field(default_factory=list)
    reasoning: List[str] = field(default_factory=list)
    search_metadata: Dict[str, Any] = field(default_factory=dict)
    response_style: str = "explanatory"
    completeness: str = "needs_followup"
    confidence: float = 0.0
    processing_time: float = 0.0
    used_llm: bool = False
    cached: bool = field(default=False, compare=False)
    cache_timestamp: Optional[float] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "analysis": self.analysis.to_dict(),
            "quality": self.quality.to_dict(),
            "sources": [s.to_dict() for s in self.sources],
            "reasoning": list(self.reasoning),
            "searchMetadata": dict(self.search_metadata),
            "responseStyle": self.response_style,
            "completeness": self.completeness,
            "confidence": round(self.confidence, 3),
            "processingTime": round(self.processing_time, 4),
            "usedLlm": self.used_llm,
            "cached": self.cached,
            "cacheTimestamp": self.cache_timestamp,
        }


@dataclass(frozen=True)
class StreamEvent:
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def to_sse(self) -> str:
        """Server-sent event framing."""
        payload = json.dumps(self.data, ensure_ascii=False, default=str)
        return f"event: {self.type}\ndata: {payload}\n\n"
