"""
Chunk quality scoring.

Scores each chunk on three signals: whether its size sits in a useful
range, whether it ends on a complete sentence, and whether it carries
structural markers (heading path, table, code, list).
"""

from dataclasses import dataclass
from typing import Sequence

TERMINAL_PUNCTUATION = (".", "!", "?", "।", ":", '"', "'", ")")


@dataclass
class QualityMetrics:
    """Quality metrics for a chunk."""

    length_score: float  # Token count within a useful range 0-1
    completeness_score: float  # Ends on terminal punctuation 0-1
    structure_score: float  # Structural markers present 0-1
    overall_score: float  # Weighted average


class ChunkQualityScorer:
    """
    Score chunk quality from length, completeness and structure.

    Tables and code are scored complete regardless of trailing punctuation.
    """

    def __init__(
        self,
        max_tokens: int,
        min_tokens: int = 50,
        length_weight: float = 0.4,
        completeness_weight: float = 0.3,
        structure_weight: float = 0.3,
    ) -> None:
        self.max_tokens = max_tokens
        self.min_tokens = min_tokens
        self.length_weight = length_weight
        self.completeness_weight = completeness_weight
        self.structure_weight = structure_weight

    def score(
        self,
        text: str,
        token_count: int,
        chunk_type: str,
        headings_path: Sequence[str],
        has_list: bool = False,
    ) -> QualityMetrics:
        length = self._length_score(token_count)
        completeness = self._completeness_score(text, chunk_type)
        structure = self._structure_score(chunk_type, headings_path, has_list)

        overall = (
            length * self.length_weight
            + completeness * self.completeness_weight
            + structure * self.structure_weight
        )
        return QualityMetrics(
            length_score=length,
            completeness_score=completeness,
            structure_score=structure,
            overall_score=round(min(1.0, max(0.0, overall)), 3),
        )

    def _length_score(self, token_count: int) -> float:
        if token_count <= 0:
            return 0.0
        if token_count > self.max_tokens:
            return 0.5
        if token_count < self.min_tokens:
            return token_count / self.min_tokens
        return 1.0

    def _completeness_score(self, text: str, chunk_type: str) -> float:
        if chunk_type in ("table", "code"):
            return 1.0
        stripped = text.rstrip()
        if not stripped:
            return 0.0
        if chunk_type == "heading":
            return 0.5
        return 1.0 if stripped.endswith(TERMINAL_PUNCTUATION) else 0.4

    def _structure_score(
        self, chunk_type: str, headings_path: Sequence[str], has_list: bool
    ) -> float:
        score = 0.4
        if headings_path:
            score += 0.3
        if chunk_type in ("table", "code") or has_list:
            score += 0.3
        return min(1.0, score)
