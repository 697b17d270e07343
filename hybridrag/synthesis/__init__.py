"""
Answer synthesis and quality validation.
"""

from hybridrag.synthesis.synthesizer import (
    ResponseSynthesis,
    ResponseSynthesizer,
    SourceAttribution,
    determine_response_style,
)
from hybridrag.synthesis.validator import QualityValidator, ValidationIssue, ValidationResult

__all__ = [
    "ResponseSynthesis",
    "ResponseSynthesizer",
    "SourceAttribution",
    "determine_response_style",
    "QualityValidator",
    "ValidationIssue",
    "ValidationResult",
]
