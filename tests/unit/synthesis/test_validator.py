"""
Tests for answer quality validation.

Organization
------------
- TestScores: Per-axis scores
- TestIssues: Typed issue detection
- TestImprovements: Suggestion ordering
- TestHistory: Quality trends and common issues
"""

import pytest

from hybridrag.core.config import SynthesisConfig
from hybridrag.query.models import QueryAnalysis, QueryType
from hybridrag.synthesis.synthesizer import ResponseSynthesis, ResponseSynthesizer
from hybridrag.synthesis.validator import QualityValidator, categorize_query, claim_sentences


# ============================================================================
# Test Helpers
# ============================================================================

QUESTION = "What is the population of Kerala?"
SUPPORTED = (
    "Based on the available documents:\n\n"
    "- Kerala's population is 33 million. [1]\n\n"
    "Sources: [1] kerala.md"
)


def _analysis(*entities: str) -> QueryAnalysis:
    return QueryAnalysis(query_type=QueryType.FACTUAL, complexity=1, key_entities=list(entities))


def _synthesis(text: str, completeness: str = "complete", confidence: float = 0.9):
    return ResponseSynthesis(
        synthesized_response=text, completeness=completeness, confidence=confidence
    )


@pytest.fixture
def validator() -> QualityValidator:
    return QualityValidator()


@pytest.fixture
def docs(make_chunk, kerala_doc):
    return [make_chunk(kerala_doc, source_document="kerala.md")]


def _issue_types(result):
    return [(issue.type, issue.severity) for issue in result.issues]


# ============================================================================
# Test Classes
# ============================================================================


class TestScores:
    def test_supported_answer(self, validator, docs):
        result = validator.validate_response(QUESTION, _analysis("Kerala"), _synthesis(SUPPORTED), docs)

        assert result.factual_accuracy == 1.0
        assert result.issues == []
        assert result.confidence == 0.9
        assert 0.0 < result.overall_score <= 1.0

    def test_overall_is_weighted_sum(self, validator, docs):
        result = validator.validate_response(QUESTION, _analysis("Kerala"), _synthesis(SUPPORTED), docs)

        expected = (
            0.25 * result.factual_accuracy
            + 0.25 * result.completeness
            + 0.20 * result.coherence
            + 0.15 * result.source_reliability
            + 0.15 * result.response_quality
        )
        assert result.overall_score == pytest.approx(expected, abs=1e-3)

    def test_claim_sentences(self):
        assert claim_sentences(SUPPORTED) == [
            "Kerala's population is 33 million.",
            "Sources: kerala.md",
        ]

    def test_empty_response(self, validator, docs):
        result = validator.validate_response(QUESTION, _analysis("Kerala"), _synthesis(""), docs)

        assert result.coherence == 0.0
        assert result.response_quality == 0.2
        assert result.factual_accuracy == 0.7

    def test_coherence_rewards_structure(self, validator):
        flat = validator.validate_coherence("Kerala is a state.")
        structured = validator.validate_coherence("- Kerala is a state.\n- Goa is a state too.")

        assert structured > flat

    def test_repetition_penalized(self, validator):
        repeated = validator.validate_coherence("Kerala is a state. Kerala is a state.")
        varied = validator.validate_coherence("Kerala is a state. Goa is a state too.")

        assert repeated < varied

    def test_filler_lowers_quality(self, validator):
        plain = validator.validate_response_quality("Kerala's population is 33 million [1].", QueryType.FACTUAL)
        filler = validator.validate_response_quality(
            "As an AI, Kerala's population is 33 million [1].", QueryType.FACTUAL
        )

        assert filler < plain

    def test_no_attribution_reliability(self, validator):
        assert validator.validate_source_reliability([]) == 0.5


class TestIssues:
    """Tests for issue detection."""

    def test_unsupported_number(self, validator, docs):
        result = validator.validate_response(
            QUESTION, _analysis("Kerala"), _synthesis("Kerala's population is 45 million [1]."), docs
        )

        assert ("factual_error", "high") in _issue_types(result)
        assert result.factual_accuracy == 0.0

    def test_unsupported_wording(self, validator, docs):
        result = validator.validate_response(
            QUESTION,
            _analysis("Kerala"),
            _synthesis("Kerala exports cashew, rubber and spices [1]."),
            docs,
        )

        assert ("factual_error", "medium") in _issue_types(result)

    def test_missing_entity(self, validator, docs):
        result = validator.validate_response(
            "Compare Kerala and Goa", _analysis("Kerala", "Goa"), _synthesis(SUPPORTED, "partial"), docs
        )

        missing = [i for i in result.issues if i.type == "missing_info"]
        assert missing[0].severity == "medium"
        assert "Goa" in missing[0].description

    def test_needs_followup(self, validator, docs):
        result = validator.validate_response(
            QUESTION, _analysis("Kerala"), _synthesis(SUPPORTED, "needs_followup"), docs
        )

        assert ("missing_info", "high") in _issue_types(result)

    def test_no_citations(self, validator, docs):
        result = validator.validate_response(
            QUESTION, _analysis("Kerala"), _synthesis("Kerala's population is 33 million."), docs
        )

        assert ("source_problem", "medium") in _issue_types(result)

    def test_citation_out_of_range(self, validator, docs):
        result = validator.validate_response(
            QUESTION, _analysis("Kerala"), _synthesis("Kerala's population is 33 million [3]."), docs
        )

        problems = [i for i in result.issues if i.type == "source_problem"]
        assert problems[0].severity == "high"
        assert "[3]" in problems[0].description

    def test_no_documents(self, validator):
        result = validator.validate_response(QUESTION, _analysis(), _synthesis("Nothing found here."), [])

        assert ("source_problem", "high") in _issue_types(result)

    def test_empty_answer_incoherent(self, validator, docs):
        result = validator.validate_response(QUESTION, _analysis("Kerala"), _synthesis(""), docs)

        assert ("coherence_issue", "medium") in _issue_types(result)

    @pytest.mark.parametrize(
        "text",
        [
            "As an AI, I think Kerala's population is 33 million [1].",
            "IMPORTANT: Kerala's population is 33 million [1].",
        ],
    )
    def test_tone(self, validator, docs, text):
        result = validator.validate_response(QUESTION, _analysis("Kerala"), _synthesis(text), docs)

        assert ("tone_issue", "low") in _issue_types(result)

    def test_issue_to_dict(self, validator, docs):
        result = validator.validate_response(
            QUESTION, _analysis("Kerala"), _synthesis("Kerala's population is 45 million [1]."), docs
        )

        data = result.to_dict()["issues"][0]
        assert data["type"] == "factual_error"
        assert data["affectedSection"].startswith("Kerala's population")


class TestImprovements:
    def test_good_response(self, validator, docs):
        result = validator.validate_response(QUESTION, _analysis("Kerala"), _synthesis(SUPPORTED), docs)

        assert result.improvements == ["Response quality is good - no major improvements needed"]

    def test_low_confidence_without_issues(self, validator, docs):
        synthesis = ResponseSynthesizer(config=SynthesisConfig(language="en")).synthesize_response(
            QUESTION, _analysis("Kerala"), docs
        )

        result = validator.validate_response(QUESTION, _analysis("Kerala"), synthesis, docs)

        assert result.improvements == [
            "Consider adding more specific examples",
            "Verify all factual claims against sources",
        ]

    def test_high_severity_first(self, validator, docs):
        result = validator.validate_response(
            QUESTION, _analysis("Kerala"), _synthesis("As an AI, the number is 45 [1]."), docs
        )

        assert result.improvements[0] == "Remove the claim or cite a source that states it"
        assert result.improvements[-1] == "Use a direct, neutral tone"


class TestHistory:
    """Quality trends and issue patterns."""

    @pytest.mark.parametrize(
        "query, category",
        [
            ("Compare Kerala and Goa", "comparative"),
            ("Kerala vs Goa", "comparative"),
            ("Why is it raining?", "analytical"),
            ("What is the budget?", "factual"),
            ("Kerala budget", "general"),
        ],
    )
    def test_categorize_query(self, query, category):
        assert categorize_query(query) == category

    def test_no_data(self, validator):
        assert validator.get_quality_trends() == {
            "avg_score": 0.0,
            "trend": "no_data",
            "recent_improvement": False,
            "total_validations": 0,
        }

    def test_improving(self, validator, docs):
        for _ in range(10):
            validator.validate_response(QUESTION, _analysis("Kerala"), _synthesis(""), docs)
        for _ in range(10):
            validator.validate_response(QUESTION, _analysis("Kerala"), _synthesis(SUPPORTED), docs)

        trends = validator.get_quality_trends("factual")

        assert trends["trend"] == "improving"
        assert trends["recent_improvement"] is True
        assert trends["total_validations"] == 20
        assert validator.get_quality_trends("comparative")["trend"] == "no_data"

    def test_stable(self, validator, docs):
        validator.validate_response(QUESTION, _analysis("Kerala"), _synthesis(SUPPORTED), docs)

        assert validator.get_quality_trends()["trend"] == "stable"

    def test_common_issues(self, validator, docs):
        for _ in range(2):
            validator.validate_response(
                QUESTION, _analysis("Kerala"), _synthesis("Kerala's population is 33 million."), docs
            )

        assert {"pattern": "source_problem_medium", "frequency": 2} in validator.get_common_issues()

        validator.clear_history()
        assert validator.get_common_issues() == []
