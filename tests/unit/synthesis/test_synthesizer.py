"""
Tests for response synthesis.

Organization
------------
- TestResponseStyle: Query type to style mapping
- TestExtractiveAnswer: Answers built from source sentences
- TestLLMSynthesis: Model path and its fallbacks
- TestStreaming: Incremental answers
- TestPrompts: Context block and prompt layout
- TestAttribution: Claims, completeness, confidence
"""

import pytest

from hybridrag.core.config import SynthesisConfig
from hybridrag.query.models import QueryAnalysis, QueryType
from hybridrag.synthesis.synthesizer import (
    ResponseSynthesizer,
    determine_response_style,
    infer_content_type,
    source_relevance,
)


# ============================================================================
# Test Helpers
# ============================================================================

QUESTION = "What is the population of Kerala?"
LLM_ANSWER = "Kerala's population is 33 million [1]."


def _analysis(query_type=QueryType.FACTUAL, complexity=1, entities=("Kerala",), data_types=()):
    return QueryAnalysis(
        query_type=query_type,
        complexity=complexity,
        key_entities=list(entities),
        data_types_needed=list(data_types),
        reasoning_steps=["Locate passages"],
    )


@pytest.fixture
def kerala_chunk(make_chunk, kerala_doc):
    return make_chunk(kerala_doc, source_document="kerala.md")


@pytest.fixture
def synthesizer() -> ResponseSynthesizer:
    return ResponseSynthesizer(config=SynthesisConfig(language="en"))


# ============================================================================
# Test Classes
# ============================================================================


class TestResponseStyle:
    @pytest.mark.parametrize(
        "query_type, complexity, expected",
        [
            (QueryType.FACTUAL, 1, "explanatory"),
            (QueryType.COMPARATIVE, 3, "comparative"),
            (QueryType.ANALYTICAL, 2, "analytical"),
            (QueryType.INFERENTIAL, 2, "analytical"),
            (QueryType.SYNTHETIC, 4, "narrative"),
            (QueryType.SYNTHETIC, 3, "explanatory"),
        ],
    )
    def test_style(self, query_type, complexity, expected):
        assert determine_response_style(_analysis(query_type, complexity)) == expected


class TestExtractiveAnswer:
    """Answers without a model."""

    def test_cited_sentence(self, synthesizer, kerala_chunk):
        result = synthesizer.synthesize_response(QUESTION, _analysis(), [kerala_chunk])

        assert result.synthesized_response == (
            "Based on the available documents:\n\n"
            "- Kerala's population is 33 million. [1]\n\n"
            "Sources: [1] kerala.md"
        )
        assert result.used_llm is False

    def test_table_statement_extracted(self, make_chunk):
        synthesizer = ResponseSynthesizer(config=SynthesisConfig(language="en"))
        table = make_chunk(
            "സ്കൂൾ കെട്ടിടം: ബജറ്റ് is ₹30 ലക്ഷം",
            source_document="budget.md",
            chunk_type="table",
        )

        answer = synthesizer.extractive_answer(
            "What is the ബജറ്റ് for the സ്കൂൾ കെട്ടിടം?", _analysis(entities=()), [table]
        )

        assert "ബജറ്റ് is ₹30 ലക്ഷം [1]" in answer
        assert answer.startswith("ലഭ്യമായ വിവരങ്ങളുടെ അടിസ്ഥാനത്തിൽ:")

    def test_no_documents(self, synthesizer):
        answer = synthesizer.extractive_answer("Who wrote Chemmeen?", _analysis(entities=()), [])

        assert answer.startswith("I have no specific information")
        assert '"Who wrote Chemmeen?"' in answer

    def test_greeting(self, synthesizer):
        assert synthesizer.extractive_answer("Hello!", _analysis(entities=()), []).startswith("Hello!")

    def test_default_language_is_malayalam(self):
        answer = ResponseSynthesizer().extractive_answer("Hello", _analysis(entities=()), [])

        assert answer.startswith("നമസ്കാരം!")

    def test_unrelated_documents(self, synthesizer, make_chunk):
        chunk = make_chunk("Monsoon arrives in June.")

        answer = synthesizer.extractive_answer("Who wrote Chemmeen?", _analysis(entities=()), [chunk])

        assert "none of them seem directly related" in answer

    def test_duplicate_sentences_once(self, synthesizer, make_chunk, kerala_doc):
        chunks = [make_chunk(kerala_doc, ordinal=0), make_chunk(kerala_doc, ordinal=1)]

        answer = synthesizer.extractive_answer(QUESTION, _analysis(), chunks)

        assert answer.count("33 million") == 1


class TestLLMSynthesis:
    """Model answers and fallbacks."""

    def test_uses_llm(self, make_llm, kerala_chunk):
        llm = make_llm(reply=f"  {LLM_ANSWER}  ")
        synthesizer = ResponseSynthesizer(llm, SynthesisConfig(language="en"))

        result = synthesizer.synthesize_response(QUESTION, _analysis(), [kerala_chunk], history="User: hi")

        assert result.synthesized_response == LLM_ANSWER
        assert result.used_llm is True
        assert "Previous conversation:\nUser: hi" in llm.calls[0]["user"]
        assert llm.calls[0]["context"].startswith("Context:\n\n[1] kerala.md")

    @pytest.mark.parametrize("reply", ["ok", "Hello! How can I help you today with documents?"])
    def test_generic_reply_falls_back(self, make_llm, kerala_chunk, reply):
        synthesizer = ResponseSynthesizer(make_llm(reply=reply), SynthesisConfig(language="en"))

        result = synthesizer.synthesize_response(QUESTION, _analysis(), [kerala_chunk])

        assert result.used_llm is False
        assert "33 million. [1]" in result.synthesized_response

    def test_llm_error_falls_back(self, make_llm, kerala_chunk):
        synthesizer = ResponseSynthesizer(
            make_llm(error=RuntimeError("down")), SynthesisConfig(language="en")
        )

        result = synthesizer.synthesize_response(QUESTION, _analysis(), [kerala_chunk])

        assert result.synthesized_response.startswith("Based on the available documents:")

    def test_unavailable_llm_not_called(self, make_llm, kerala_chunk):
        llm = make_llm(reply=LLM_ANSWER, available=False)
        synthesizer = ResponseSynthesizer(llm, SynthesisConfig(language="en"))

        synthesizer.synthesize_response(QUESTION, _analysis(), [kerala_chunk])

        assert llm.calls == []
        assert not synthesizer.has_llm

    def test_no_documents_skips_llm(self, make_llm):
        llm = make_llm(reply=LLM_ANSWER)

        ResponseSynthesizer(llm).synthesize_response(QUESTION, _analysis(), [])

        assert llm.calls == []

    def test_is_generic_reply(self, synthesizer):
        assert synthesizer.is_generic_reply(None)
        assert synthesizer.is_generic_reply("Hi there, how can I help?")
        assert not synthesizer.is_generic_reply(LLM_ANSWER)


class TestStreaming:
    def test_streams_pieces(self, make_llm, kerala_chunk):
        llm = make_llm(stream_pieces=["Kerala ", "is 33 million [1]."])
        synthesizer = ResponseSynthesizer(llm)

        pieces = list(synthesizer.stream_response(QUESTION, _analysis(), [kerala_chunk]))

        assert pieces == ["Kerala ", "is 33 million [1]."]

    def test_failure_before_output_falls_back(self, make_llm, kerala_chunk):
        llm = make_llm(stream_pieces=[RuntimeError("down")])
        synthesizer = ResponseSynthesizer(llm, SynthesisConfig(language="en"))

        text = "".join(synthesizer.stream_response(QUESTION, _analysis(), [kerala_chunk]))

        assert text.startswith("Based on the available documents:")
        assert text.endswith("Sources: [1] kerala.md")

    def test_failure_after_output_propagates(self, make_llm, kerala_chunk):
        llm = make_llm(stream_pieces=["Ker", RuntimeError("down")])
        stream = ResponseSynthesizer(llm).stream_response(QUESTION, _analysis(), [kerala_chunk])

        assert next(stream) == "Ker"
        with pytest.raises(RuntimeError):
            next(stream)

    def test_stream_reports_llm_path(self, make_llm, kerala_chunk):
        stream = ResponseSynthesizer(make_llm(stream_pieces=["Kerala [1]."])).stream_response(
            QUESTION, _analysis(), [kerala_chunk]
        )

        assert stream.used_llm is False
        assert list(stream) == ["Kerala [1]."]
        assert stream.used_llm is True

    def test_stream_reports_extractive_fallback(self, make_llm, kerala_chunk):
        llm = make_llm(stream_pieces=[RuntimeError("down")])
        stream = ResponseSynthesizer(llm).stream_response(QUESTION, _analysis(), [kerala_chunk])

        "".join(stream)

        assert stream.used_llm is False

    def test_no_llm_streams_extractive_lines(self, synthesizer, kerala_chunk):
        pieces = list(synthesizer.stream_response(QUESTION, _analysis(), [kerala_chunk]))

        assert len(pieces) > 1
        assert "".join(pieces) == synthesizer.extractive_answer(QUESTION, _analysis(), [kerala_chunk])


class TestPrompts:
    def test_context_headers(self, synthesizer, kerala_chunk, make_chunk):
        table = make_chunk(
            "ബജറ്റ് is ₹30 ലക്ഷം",
            source_document="budget.md",
            chunk_type="table",
            headings_path=("Ward Projects",),
        )

        context = synthesizer.build_context([kerala_chunk, table])

        assert context == (
            "Context:\n\n"
            "[1] kerala.md | General | text\nKerala's population is 33 million.\n\n"
            "[2] budget.md | Ward Projects | table\nബജറ്റ് is ₹30 ലക്ഷം"
        )

    def test_long_documents_truncated(self, make_chunk):
        synthesizer = ResponseSynthesizer(config=SynthesisConfig(max_context_chars=400))
        chunk = make_chunk("word " * 200)

        context = synthesizer.build_context([chunk])

        assert context.endswith("...")

    def test_empty_context(self, synthesizer):
        assert synthesizer.build_context([]) == ""

    def test_prompt_layout(self, synthesizer, kerala_chunk):
        system, user, _ = synthesizer.build_prompts(QUESTION, [kerala_chunk], "comparative")

        assert "ONLY the numbered sources" in system
        assert user.startswith(f"Question: {QUESTION}")
        assert "Response style: comparative." in user


class TestAttribution:
    """Attribution, completeness and confidence."""

    def test_claims_follow_citations(self, synthesizer, kerala_chunk):
        result = synthesizer.synthesize_response(QUESTION, _analysis(), [kerala_chunk])

        attribution = result.source_attribution[0]
        assert attribution.claims == ["Kerala's population is 33 million."]
        assert attribution.source == "kerala.md"
        assert attribution.used_for == "background information and context"

    def test_inline_citation_claim(self, synthesizer, kerala_chunk):
        result = synthesizer.build_synthesis(QUESTION, _analysis(), [kerala_chunk], LLM_ANSWER)

        assert result.source_attribution[0].claims == ["Kerala's population is 33 million."]

    def test_claim_carried_to_trailing_citation(self, synthesizer, make_chunk):
        chunks = [make_chunk("a", ordinal=0), make_chunk("b", ordinal=1)]
        text = "Kerala is a state. [2]"

        result = synthesizer.build_synthesis(QUESTION, _analysis(), chunks, text)

        assert result.source_attribution[0].claims == []
        assert result.source_attribution[1].claims == ["Kerala is a state."]

    def test_complete_confidence(self, synthesizer, kerala_chunk):
        result = synthesizer.synthesize_response(QUESTION, _analysis(), [kerala_chunk])

        assert result.completeness == "complete"
        assert result.confidence == pytest.approx(0.79)
        assert result.reasoning_chain[-2:] == [
            "Reviewed 1 passages from 1 source(s)",
            "Evidence coverage: complete",
        ]

    def test_partial(self, synthesizer, kerala_chunk):
        analysis = _analysis(entities=("Kerala", "Goa"))

        assert synthesizer.assess_completeness(analysis, [kerala_chunk]) == "partial"

    def test_missing_table_is_partial(self, synthesizer, kerala_chunk):
        analysis = _analysis(data_types=("text", "tables"))

        assert synthesizer.assess_completeness(analysis, [kerala_chunk]) == "partial"

    def test_no_documents(self, synthesizer):
        result = synthesizer.synthesize_response(QUESTION, _analysis(), [])

        assert result.completeness == "needs_followup"
        assert result.confidence == 0.1
        assert result.source_attribution == []

    def test_max_sources(self, make_chunk):
        synthesizer = ResponseSynthesizer(config=SynthesisConfig(max_sources=1))
        chunks = [make_chunk("Kerala a.", ordinal=0), make_chunk("Kerala b.", ordinal=1)]

        result = synthesizer.synthesize_response(QUESTION, _analysis(), chunks)

        assert len(result.source_attribution) == 1

    def test_content_type_and_relevance(self, make_chunk):
        text = make_chunk("plain text", quality_score=0.5)
        table = make_chunk("a is b", chunk_type="table", quality_score=0.5)
        chart = make_chunk("rainfall", semantic_tags=("chart",))
        image = make_chunk("Visual analysis: a map")

        assert [infer_content_type(c) for c in (text, table, chart, image)] == [
            "text", "table", "chart", "image",
        ]
        assert source_relevance(text) == pytest.approx(0.6)
        assert source_relevance(table) == pytest.approx(0.7)

    def test_to_dict(self, synthesizer, kerala_chunk):
        data = synthesizer.synthesize_response(QUESTION, _analysis(), [kerala_chunk]).to_dict()

        assert data["sourceAttribution"][0]["chunkId"] == kerala_chunk.id
        assert data["responseStyle"] == "explanatory"
