"""
Answer quality validation.

Scores a synthesized answer on five axes and flags typed issues that the
chat surface turns into quality signals:

    overall = 0.25 factual_accuracy + 0.25 completeness + 0.20 coherence
            + 0.15 source_reliability + 0.15 response_quality

Issue types: factual_error, missing_info, coherence_issue, source_problem,
tone_issue. Severities: low, medium, high.

All checks are deterministic surface heuristics over the answer and the
supplied chunks; nothing here calls a model.
"""

import re
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Sequence, Set

from hybridrag.chunking.models import Chunk
from hybridrag.core.config import SynthesisConfig
from hybridrag.core.logging import get_logger
from hybridrag.query.models import QueryAnalysis, QueryType
from hybridrag.shared.text import content_tokens, normalize_whitespace, split_sentences, tokenize
from hybridrag.synthesis.synthesizer import CITATION, ResponseSynthesis, SourceAttribution

logger = get_logger(__name__)

ISSUE_TYPES = ("factual_error", "missing_info", "coherence_issue", "source_problem", "tone_issue")
SEVERITIES = ("low", "medium", "high")

WEIGHTS = {
    "factual_accuracy": 0.25,
    "completeness": 0.25,
    "coherence": 0.20,
    "source_reliability": 0.15,
    "response_quality": 0.15,
}

COMPLETENESS_VALUE = {"complete": 1.0, "partial": 0.6, "needs_followup": 0.3}

CONNECTORS = re.compile(
    r"\b(?:because|therefore|however|while|whereas|also|additionally|in contrast|"
    r"as a result|so|since|first|second|finally|both)\b",
    re.IGNORECASE,
)
FILLER = re.compile(
    r"\b(?:as an ai|i am just an ai|i cannot browse|i'm sorry, but|i apologi[sz]e)\b",
    re.IGNORECASE,
)
SHOUTING = re.compile(r"\b[A-Z]{6,}\b")

SUPPORT_THRESHOLD = 0.5
MIN_CLAIM_TOKENS = 3
MAX_FACTUAL_ISSUES = 3
MAX_IMPROVEMENTS = 4
TREND_WINDOW = 10


@dataclass
class ValidationIssue:
    type: str  # one of ISSUE_TYPES
    severity: str  # one of SEVERITIES
    description: str
    suggestion: str
    affected_section: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "type": self.type,
            "severity": self.severity,
            "description": self.description,
            "suggestion": self.suggestion,
        }
        if self.affected_section:
            payload["affectedSection"] = self.affected_section
        return payload


@dataclass
class ValidationResult:
    overall_score: float
    factual_accuracy: float
    completeness: float
    coherence: float
    source_reliability: float
    response_quality: float
    issues: List[ValidationIssue] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallScore": round(self.overall_score, 4),
            "factualAccuracy": round(self.factual_accuracy, 4),
            "completeness": round(self.completeness, 4),
            "coherence": round(self.coherence, 4),
            "sourceReliability": round(self.source_reliability, 4),
            "responseQuality": round(self.response_quality, 4),
            "issues": [issue.to_dict() for issue in self.issues],
            "improvements": list(self.improvements),
            "confidence": round(self.confidence, 4),
        }


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def claim_sentences(response: str) -> List[str]:
    """Answer sentences that state something, citation markers removed."""
    claims = []
    for line in response.splitlines():
        line = line.strip().lstrip("-*•").strip()
        if not line or line.endswith(":"):
            continue
        for sentence in split_sentences(line):
            sentence = normalize_whitespace(CITATION.sub("", sentence))
            if len(content_tokens(sentence)) >= MIN_CLAIM_TOKENS:
                claims.append(sentence)
    return claims


def categorize_query(query: str) -> str:
    lowered = query.lower()
    if "compare" in lowered or re.search(r"\bvs\b", lowered):
        return "comparative"
    if re.search(r"\b(?:why|how)\b", lowered):
        return "analytical"
    if re.search(r"\b(?:what|who)\b", lowered):
        return "factual"
    return "general"


class QualityValidator:
    """Heuristic answer validator with per-category quality history."""

    def __init__(self, config: Optional[SynthesisConfig] = None) -> None:
        self.config = config or SynthesisConfig()
        self._lock = threading.Lock()
        self._history: Dict[str, Deque[ValidationResult]] = {}
        self._issue_patterns: Counter = Counter()

    def validate_response(
        self,
        query: str,
        analysis: QueryAnalysis,
        synthesis: ResponseSynthesis,
        documents: Sequence[Chunk],
    ) -> ValidationResult:
        """
        Score an answer and list its issues.

        Args:
            query: User question
            analysis: Its classification
            synthesis: The synthesized answer
            documents: Chunks the answer was built from

        Returns:
            ValidationResult
        """
        response = synthesis.synthesized_response or ""
        vocabulary = self._vocabulary(documents)
        unsupported = self._unsupported_claims(response, vocabulary)
        claims = claim_sentences(response)

        factual = self.validate_factual_accuracy(claims, unsupported, documents)
        completeness = self.validate_completeness(query, response, analysis, synthesis)
        coherence = self.validate_coherence(response)
        reliability = self.validate_source_reliability(synthesis.source_attribution)
        quality = self.validate_response_quality(response, analysis.query_type)

        issues = self.identify_issues(
            response, analysis, synthesis, documents, unsupported, coherence
        )
        scores = {
            "factual_accuracy": factual,
            "completeness": completeness,
            "coherence": coherence,
            "source_reliability": reliability,
            "response_quality": quality,
        }
        result = ValidationResult(
            overall_score=round(sum(WEIGHTS[k] * v for k, v in scores.items()), 4),
            issues=issues,
            improvements=self.generate_improvements(synthesis, issues),
            confidence=synthesis.confidence,
            **{k: round(v, 4) for k, v in scores.items()},
        )

        self._store(query, result)
        logger.debug(
            "Validated response",
            overall=result.overall_score,
            issues=len(issues),
        )
        return result

    # ------------------------------------------------------------------
    # Scores
    # ------------------------------------------------------------------

    @staticmethod
    def _vocabulary(documents: Sequence[Chunk]) -> Set[str]:
        vocabulary: Set[str] = set()
        for chunk in documents:
            vocabulary.update(tokenize(chunk.text, keep_numbers=True))
            vocabulary.update(tokenize(chunk.source_document, keep_numbers=True))
        return vocabulary

    @staticmethod
    def _unsupported_claims(response: str, vocabulary: Set[str]) -> List[str]:
        unsupported = []
        for claim in claim_sentences(response):
            tokens = content_tokens(claim)
            numbers = [t for t in tokens if any(ch.isdigit() for ch in t)]
            support = sum(1 for t in tokens if t in vocabulary) / len(tokens)
            if support < SUPPORT_THRESHOLD or any(n not in vocabulary for n in numbers):
                unsupported.append(claim)
        return unsupported

    @staticmethod
    def validate_factual_accuracy(
        claims: Sequence[str], unsupported: Sequence[str], documents: Sequence[Chunk]
    ) -> float:
        if not claims:
            return 0.7
        if not documents:
            return 0.3
        return _clamp(1.0 - len(unsupported) / len(claims))

    @staticmethod
    def validate_completeness(
        query: str, response: str, analysis: QueryAnalysis, synthesis: ResponseSynthesis
    ) -> float:
        lowered = response.lower()
        if analysis.key_entities:
            covered = sum(1 for e in analysis.key_entities if e.lower() in lowered)
            coverage = covered / len(analysis.key_entities)
        else:
            terms = set(content_tokens(query))
            answer_terms = set(tokenize(response, keep_numbers=True))
            coverage = len(terms & answer_terms) / len(terms) if terms else 1.0
        evidence = COMPLETENESS_VALUE.get(synthesis.completeness, 0.3)
        return _clamp(0.5 * coverage + 0.5 * evidence)

    @staticmethod
    def validate_coherence(response: str) -> float:
        sentences = [s for s in split_sentences(normalize_whitespace(response)) if s]
        if not sentences:
            return 0.0

        score = 0.6
        structured = any(line.strip().startswith(("-", "*", "•")) for line in response.splitlines())
        if CONNECTORS.search(response) or structured:
            score += 0.2
        if len(sentences) >= 2:
            score += 0.1

        normalized = [s.lower() for s in sentences]
        duplicates = len(normalized) - len(set(normalized))
        score -= 0.2 * min(1.0, duplicates / len(normalized) * 2)

        average_words = sum(len(s.split()) for s in sentences) / len(sentences)
        if average_words > 40:
            score -= 0.15
        elif average_words < 3:
            score -= 0.1
        return _clamp(score)

    @staticmethod
    def validate_source_reliability(attributions: Sequence[SourceAttribution]) -> float:
        if not attributions:
            return 0.5
        type_score = min(1.0, len({a.content_type for a in attributions}) / 3)
        source_score = min(1.0, len({a.source for a in attributions}) / 3)
        diversity = (type_score + source_score) / 2
        relevance = sum(a.relevance for a in attributions) / len(attributions)
        coverage = min(1.0, len(attributions) / 4)
        return _clamp(diversity * 0.3 + relevance * 0.5 + coverage * 0.2)

    def validate_response_quality(self, response: str, query_type: QueryType) -> float:
        text = response.strip()
        if len(text) < self.config.min_response_chars:
            return 0.2
        score = 0.7
        if CITATION.search(text):
            score += 0.1
        if 80 <= len(text) <= 2500:
            score += 0.1
        elif len(text) > 4000:
            score -= 0.2
        if query_type == QueryType.FACTUAL and len(text) > 2500:
            score -= 0.1
        if FILLER.search(text):
            score -= 0.2
        return _clamp(score)

    # ------------------------------------------------------------------
    # Issues and improvements
    # ------------------------------------------------------------------

    def identify_issues(
        self,
        response: str,
        analysis: QueryAnalysis,
        synthesis: ResponseSynthesis,
        documents: Sequence[Chunk],
        unsupported: Sequence[str],
        coherence: float,
    ) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []

        for claim in list(unsupported)[:MAX_FACTUAL_ISSUES]:
            has_number = any(ch.isdigit() for ch in claim)
            issues.append(
                ValidationIssue(
                    type="factual_error",
                    severity="high" if has_number else "medium",
                    description=f"Claim is not supported by the sources: {claim[:120]}",
                    suggestion="Remove the claim or cite a source that states it",
                    affected_section=claim[:80],
                )
            )

        lowered = response.lower()
        missing = [e for e in analysis.key_entities if e.lower() not in lowered]
        if documents and synthesis.completeness == "needs_followup":
            issues.append(
                ValidationIssue(
                    type="missing_info",
                    severity="high",
                    description="No retrieved source supports the question",
                    suggestion="Ask a follow-up question or add documents covering the topic",
                )
            )
        elif missing:
            issues.append(
                ValidationIssue(
                    type="missing_info",
                    severity="high" if len(missing) == len(analysis.key_entities) else "medium",
                    description=f"Answer does not mention: {', '.join(missing)}",
                    suggestion="Cover every entity the question asks about",
                )
            )

        if coherence < 0.5:
            issues.append(
                ValidationIssue(
                    type="coherence_issue",
                    severity="medium" if coherence < 0.3 else "low",
                    description="Answer lacks a clear logical structure",
                    suggestion="Lead with the direct answer and connect supporting points",
                )
            )

        issues.extend(self._source_issues(response, documents))

        if FILLER.search(response) or SHOUTING.search(response):
            issues.append(
                ValidationIssue(
                    type="tone_issue",
                    severity="low",
                    description="Answer contains filler or an unsuitable tone",
                    suggestion="Use a direct, neutral tone",
                )
            )
        return issues

    @staticmethod
    def _source_issues(response: str, documents: Sequence[Chunk]) -> List[ValidationIssue]:
        if not documents:
            return [
                ValidationIssue(
                    type="source_problem",
                    severity="high",
                    description="No source documents were available",
                    suggestion="Check that relevant documents are ingested",
                )
            ]
        cited = {int(n) for n in CITATION.findall(response)}
        if not cited:
            return [
                ValidationIssue(
                    type="source_problem",
                    severity="medium",
                    description="Answer does not cite its sources",
                    suggestion="Add [n] citations for each factual claim",
                )
            ]
        invalid = sorted(n for n in cited if not 1 <= n <= len(documents))
        if invalid:
            return [
                ValidationIssue(
                    type="source_problem",
                    severity="high",
                    description=f"Citations refer to missing sources: {invalid}",
                    suggestion="Cite only the numbered sources in the context",
                )
            ]
        return []

    @staticmethod
    def generate_improvements(
        synthesis: ResponseSynthesis, issues: Sequence[ValidationIssue]
    ) -> List[str]:
        if not issues and synthesis.confidence > 0.8:
            return ["Response quality is good - no major improvements needed"]
        severity_rank = {s: i for i, s in enumerate(reversed(SEVERITIES))}
        ordered = sorted(issues, key=lambda issue: severity_rank[issue.severity])
        improvements = list(dict.fromkeys(issue.suggestion for issue in ordered))
        if not improvements:
            improvements = [
                "Consider adding more specific examples",
                "Verify all factual claims against sources",
            ]
        return improvements[:MAX_IMPROVEMENTS]

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _store(self, query: str, result: ValidationResult) -> None:
        category = categorize_query(query)
        with self._lock:
            history = self._history.setdefault(
                category, deque(maxlen=self.config.quality_history_size)
            )
            history.append(result)
            self._issue_patterns.update(f"{i.type}_{i.severity}" for i in result.issues)

    def get_quality_trends(self, category: Optional[str] = None) -> Dict[str, Any]:
        """Average recent score and its direction versus the previous window."""
        with self._lock:
            if category is not None:
                results = list(self._history.get(category, ()))
            else:
                results = [r for history in self._history.values() for r in history]

        if not results:
            return {"avg_score": 0.0, "trend": "no_data", "recent_improvement": False,
                    "total_validations": 0}

        recent = results[-TREND_WINDOW:]
        older = results[-2 * TREND_WINDOW : -TREND_WINDOW]
        recent_avg = sum(r.overall_score for r in recent) / len(recent)
        older_avg = sum(r.overall_score for r in older) / len(older) if older else recent_avg
        if recent_avg > older_avg:
            trend = "improving"
        elif recent_avg < older_avg:
            trend = "declining"
        else:
            trend = "stable"
        return {
            "avg_score": round(recent_avg, 4),
            "trend": trend,
            "recent_improvement": recent_avg > older_avg,
            "total_validations": len(results),
        }

    def get_common_issues(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                {"pattern": pattern, "frequency": frequency}
                for pattern, frequency in self._issue_patterns.most_common(10)
            ]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
            self._issue_patterns.clear()
