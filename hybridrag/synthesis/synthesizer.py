"""
Response synthesis.

Turns ranked chunks and a query analysis into a cited answer.

Architecture Context
--------------------
    HybridSearchEngine ──→ documents (ranked Chunks)
                                 │
                    ┌────────────┴────────────┐
                    │   ResponseSynthesizer   │
                    │  style ← query type     │
                    │  context block [n] ...  │
                    └────────────┬────────────┘
                                 │
              ┌──────────────────┴──────────────────┐
              ↓                                     ↓
       LLMClient (cited answer)          extractive fallback
                                         (best sentences + [n])
                                 │
                                 ↓
    ResponseSynthesis{text, reasoning, confidence, attribution,
                      style, completeness}

The model is restricted to the numbered context. When no model is
configured, when it fails, or when it returns a generic reply, the answer
is assembled from the source sentences that best match the question, each
followed by its citation number.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from hybridrag.chunking.models import Chunk
from hybridrag.core.config import SynthesisConfig
from hybridrag.core.logging import get_logger
from hybridrag.llm.base import GenerationConfig, LLMClient
from hybridrag.query.models import QueryAnalysis, QueryType
from hybridrag.shared.text import (
    contains_malayalam,
    content_tokens,
    normalize_whitespace,
    split_sentences,
    tokenize,
)

logger = get_logger(__name__)

STYLE_GUIDANCE = {
    "explanatory": "Give a concise explanation focusing only on the essential information.",
    "comparative": "Compare the key differences and similarities point by point.",
    "analytical": "Provide a structured response with the key points and how they connect.",
    "narrative": "Present the information in a logical sequence across the sources.",
}

USED_FOR = {
    "text": "background information and context",
    "table": "statistical data and numerical evidence",
    "chart": "trends and visual data analysis",
    "image": "visual evidence and illustrations",
}

SYSTEM_PROMPT = (
    "You answer questions about a document collection using ONLY the numbered "
    "sources in the context.\n\n"
    "Rules:\n"
    "1. Every factual claim must cite its source number, like [1] or [2].\n"
    "2. Never use knowledge that is not in the sources.\n"
    "3. Start with the direct answer, then give supporting details with "
    "numbers, dates and names exactly as written in the sources.\n"
    "4. Table rows appear as 'Column is Value' statements; quote values verbatim.\n"
    "5. If the sources do not contain the answer, say so plainly.\n"
    "6. Answer in the language of the question."
)

GREETINGS = frozenset(
    {"hi", "hello", "hey", "hai", "helo", "namaste", "namaskar", "namaskaram", "vanakkam"}
)

GENERIC_REPLY = re.compile(r"^\s*(?:hello|hi|hey)\b.{0,40}how can i help", re.IGNORECASE)
CITATION = re.compile(r"\[(\d+)\]")

MAX_EXTRACTED_SENTENCES = 3
MAX_SENTENCE_CHARS = 400

MESSAGES = {
    "ml": {
        "no_documents": (
            'നിങ്ങളുടെ ചോദ്യത്തിന് ഉത്തരം നൽകാൻ എനിക്ക് പ്രത്യേക വിവരങ്ങൾ ഇല്ല: "{query}". '
            "ദയവായി ചോദ്യം വീണ്ടും ചോദിക്കുക അല്ലെങ്കിൽ ബന്ധപ്പെട്ട ഡോക്യുമെന്റുകൾ "
            "അപ്‌ലോഡ് ചെയ്തിട്ടുണ്ടോ എന്ന് പരിശോധിക്കുക."
        ),
        "unrelated": (
            'എനിക്ക് ചില ഡോക്യുമെന്റുകൾ കണ്ടെത്തി, പക്ഷേ അവയിൽ "{query}" എന്നതുമായി '
            "നേരിട്ട് ബന്ധപ്പെട്ട വിവരങ്ങൾ ഇല്ല. ദയവായി കൂടുതൽ വ്യക്തമായി ചോദിക്കുക."
        ),
        "greeting": (
            "നമസ്കാരം! അപ്‌ലോഡ് ചെയ്ത ഡോക്യുമെന്റുകളിൽ നിന്ന് വിവരങ്ങൾ കണ്ടെത്താൻ "
            "ഞാൻ ഇവിടെയുണ്ട്. എന്താണ് അറിയേണ്ടത്?"
        ),
        "intro": "ലഭ്യമായ വിവരങ്ങളുടെ അടിസ്ഥാനത്തിൽ:",
        "sources": "ഉറവിടങ്ങൾ",
    },
    "en": {
        "no_documents": (
            'I have no specific information to answer: "{query}". Please rephrase the '
            "question or check that the related documents were uploaded."
        ),
        "unrelated": (
            'I found some documents, but none of them seem directly related to "{query}". '
            "Please ask more specifically."
        ),
        "greeting": (
            "Hello! I can find information in the uploaded documents. "
            "What would you like to know?"
        ),
        "intro": "Based on the available documents:",
        "sources": "Sources",
    },
}

SOURCE_LABELS = tuple(f"{messages['sources']}:" for messages in MESSAGES.values())
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([.,;:!?])")


@dataclass
class SourceAttribution:
    """Which source supported which part of the answer."""

    source: str
    chunk_id: str
    relevance: float
    used_for: str
    content_type: str  # text, table, chart, image
    claims: List[str] = field(default_factory=list)
    section: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "chunkId": self.chunk_id,
            "relevance": round(self.relevance, 3),
            "usedFor": self.used_for,
            "contentType": self.content_type,
            "claims": list(self.claims),
            "section": self.section,
        }


@dataclass
class ResponseSynthesis:
    synthesized_response: str
    reasoning_chain: List[str] = field(default_factory=list)
    confidence: float = 0.0
    source_attribution: List[SourceAttribution] = field(default_factory=list)
    response_style: str = "explanatory"
    completeness: str = "needs_followup"  # complete, partial, needs_followup
    used_llm: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "synthesizedResponse": self.synthesized_response,
            "reasoningChain": list(self.reasoning_chain),
            "confidence": round(self.confidence, 3),
            "sourceAttribution": [a.to_dict() for a in self.source_attribution],
            "responseStyle": self.response_style,
            "completeness": self.completeness,
        }


class AnswerStream:
    """
    Iterator over answer pieces.

    ``used_llm`` becomes True once the model has produced output; it stays
    False when the extractive answer is streamed instead.
    """

    def __init__(self) -> None:
        self.used_llm = False
        self._pieces: Iterator[str] = iter(())

    def __iter__(self) -> "AnswerStream":
        return self

    def __next__(self) -> str:
        return next(self._pieces)


def determine_response_style(analysis: QueryAnalysis) -> str:
    if analysis.query_type == QueryType.COMPARATIVE:
        return "comparative"
    if analysis.query_type in (QueryType.ANALYTICAL, QueryType.INFERENTIAL):
        return "analytical"
    if analysis.query_type == QueryType.SYNTHETIC and analysis.complexity >= 4:
        return "narrative"
    return "explanatory"


def infer_content_type(chunk: Chunk) -> str:
    lowered = chunk.text.lower()
    if "visual analysis:" in lowered:
        return "image"
    if chunk.is_table:
        return "table"
    if "chart" in chunk.semantic_tags or "chart" in lowered or "graph" in lowered:
        return "chart"
    return "text"


def source_relevance(chunk: Chunk) -> float:
    """Heuristic weight of a source: detail and structured data count."""
    relevance = 0.5
    length = len(chunk.text)
    if length > 1000:
        relevance += 0.2
    if length > 2000:
        relevance += 0.1
    if chunk.is_table:
        relevance += 0.1
    relevance += 0.2 * chunk.quality_score
    return min(1.0, relevance)


def _language(query: str, default: str) -> str:
    if contains_malayalam(query):
        return "ml"
    return default if default in MESSAGES else "ml"


class ResponseSynthesizer:
    """
    Build cited answers from retrieved chunks.

    Args:
        llm: Optional LLM client; None means extractive answers only
        config: Source limits, context budget and fallback language
    """

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        config: Optional[SynthesisConfig] = None,
        generation: Optional[GenerationConfig] = None,
    ) -> None:
        self.llm = llm
        self.config = config or SynthesisConfig()
        self.generation = generation

    @property
    def has_llm(self) -> bool:
        return self.llm is not None and self.llm.is_available()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def synthesize_response(
        self,
        query: str,
        analysis: QueryAnalysis,
        documents: Sequence[Chunk],
        history: str = "",
    ) -> ResponseSynthesis:
        """
        Synthesize a cited answer.

        Args:
            query: User question
            analysis: Its classification
            documents: Ranked chunks, best first
            history: Formatted relevant prior turns

        Returns:
            ResponseSynthesis
        """
        documents = list(documents[: self.config.max_sources])
        style = determine_response_style(analysis)
        text, used_llm = self._generate(query, analysis, documents, style, history)
        return self.build_synthesis(query, analysis, documents, text, style, used_llm)

    def stream_response(
        self,
        query: str,
        analysis: QueryAnalysis,
        documents: Sequence[Chunk],
        history: str = "",
    ) -> AnswerStream:
        """
        Yield the answer incrementally.

        Falls back to the extractive answer when the model fails before
        producing any text. A failure after partial output propagates.
        The returned stream reports which path produced the text.
        """
        stream = AnswerStream()
        stream._pieces = self._stream_pieces(query, analysis, documents, history, stream)
        return stream

    def _stream_pieces(
        self,
        query: str,
        analysis: QueryAnalysis,
        documents: Sequence[Chunk],
        history: str,
        stream: AnswerStream,
    ) -> Iterator[str]:
        documents = list(documents[: self.config.max_sources])
        style = determine_response_style(analysis)

        if self.has_llm and documents:
            system, user, context = self.build_prompts(query, documents, style, history)
            produced = False
            try:
                for piece in self.llm.stream_generate_with_context(
                    system, user, context, config=self.generation
                ):
                    produced = True
                    stream.used_llm = True
                    yield piece
                if produced:
                    return
            except Exception as e:
                if produced:
                    raise
                logger.warning("LLM streaming failed, using extractive answer", error=str(e))

        for line in self.extractive_answer(query, analysis, documents).splitlines(keepends=True):
            yield line

    def build_synthesis(
        self,
        query: str,
        analysis: QueryAnalysis,
        documents: Sequence[Chunk],
        text: str,
        response_style: Optional[str] = None,
        used_llm: bool = False,
    ) -> ResponseSynthesis:
        """Assemble attribution, completeness and confidence for an answer text."""
        documents = list(documents[: self.config.max_sources])
        attributions = self.create_source_attributions(documents, text)
        completeness = self.assess_completeness(analysis, documents)
        return ResponseSynthesis(
            synthesized_response=text,
            reasoning_chain=self._reasoning_chain(analysis, documents, completeness),
            confidence=self.calculate_confidence(documents, completeness, attributions),
            source_attribution=attributions,
            response_style=response_style or determine_response_style(analysis),
            completeness=completeness,
            used_llm=used_llm,
        )

    # ------------------------------------------------------------------
    # Prompting
    # ------------------------------------------------------------------

    def build_context(self, documents: Sequence[Chunk]) -> str:
        """Numbered context block: ``[n] source | Section | type`` then text."""
        if not documents:
            return ""
        per_document = max(200, self.config.max_context_chars // len(documents))
        parts = []
        for number, chunk in enumerate(documents, 1):
            section = chunk.section_title or "General"
            header = f"[{number}] {chunk.source_document} | {section} | {infer_content_type(chunk)}"
            body = chunk.text if len(chunk.text) <= per_document else chunk.text[:per_document] + "..."
            parts.append(f"{header}\n{body}")
        return "Context:\n\n" + "\n\n".join(parts)

    def build_prompts(
        self, query: str, documents: Sequence[Chunk], style: str, history: str = ""
    ) -> Tuple[str, str, str]:
        """Returns (system prompt, user prompt, context)."""
        user_parts = []
        if history:
            user_parts.append(f"Previous conversation:\n{history}\n")
        user_parts.append(f"Question: {query}")
        user_parts.append(f"Response style: {style}. {STYLE_GUIDANCE[style]}")
        return SYSTEM_PROMPT, "\n".join(user_parts), self.build_context(documents)

    def _generate(
        self,
        query: str,
        analysis: QueryAnalysis,
        documents: List[Chunk],
        style: str,
        history: str,
    ) -> Tuple[str, bool]:
        if not self.has_llm or not documents:
            return self.extractive_answer(query, analysis, documents), False

        system, user, context = self.build_prompts(query, documents, style, history)
        try:
            text = self.llm.generate_with_context(system, user, context, config=self.generation)
        except Exception as e:
            logger.warning("LLM synthesis failed, using extractive answer", error=str(e))
            return self.extractive_answer(query, analysis, documents), False

        if self.is_generic_reply(text):
            logger.warning("Generic LLM reply, using extractive answer", length=len(text or ""))
            return self.extractive_answer(query, analysis, documents), False
        return text.strip(), True

    def is_generic_reply(self, text: Optional[str]) -> bool:
        if not text or len(text.strip()) < self.config.min_response_chars:
            return True
        return bool(GENERIC_REPLY.search(text))

    # ------------------------------------------------------------------
    # Extractive answers
    # ------------------------------------------------------------------

    def extractive_answer(
        self, query: str, analysis: QueryAnalysis, documents: Sequence[Chunk]
    ) -> str:
        """Answer from the best-matching source sentences with citations."""
        messages = MESSAGES[_language(query, self.config.language)]
        if not documents:
            if query.strip().lower().strip("!.?") in GREETINGS:
                return messages["greeting"]
            return messages["no_documents"].format(query=query)

        picked = self._best_sentences(query, analysis, documents)
        if not picked:
            return messages["unrelated"].format(query=query)

        lines = [messages["intro"], ""]
        lines.extend(f"- {sentence} [{number}]" for number, sentence in picked)
        cited = sorted({number for number, _ in picked})
        lines.append("")
        lines.append(
            f"{messages['sources']}: "
            + ", ".join(f"[{n}] {documents[n - 1].source_document}" for n in cited)
        )
        return "\n".join(lines)

    def _best_sentences(
        self, query: str, analysis: QueryAnalysis, documents: Sequence[Chunk]
    ) -> List[Tuple[int, str]]:
        wanted = set(content_tokens(query))
        for entity in analysis.key_entities:
            wanted.update(tokenize(entity, keep_numbers=True))
        if not wanted:
            return []

        scored = []
        for number, chunk in enumerate(documents, 1):
            # Table rows are one statement per line with no closing space
            sentences = [s for line in chunk.text.splitlines() for s in split_sentences(line)]
            for position, sentence in enumerate(sentences):
                sentence = normalize_whitespace(sentence)
                if sentence.lower().startswith("columns:"):
                    continue
                overlap = len(wanted & set(tokenize(sentence, keep_numbers=True)))
                if overlap:
                    scored.append((-overlap, number, position, sentence[:MAX_SENTENCE_CHARS]))

        scored.sort()
        picked: List[Tuple[int, str]] = []
        seen = set()
        for _, number, _, sentence in scored:
            if sentence.lower() in seen:
                continue
            seen.add(sentence.lower())
            picked.append((number, sentence))
            if len(picked) >= MAX_EXTRACTED_SENTENCES:
                break
        return picked

    # ------------------------------------------------------------------
    # Attribution, completeness, confidence
    # ------------------------------------------------------------------

    def create_source_attributions(
        self, documents: Sequence[Chunk], text: str = ""
    ) -> List[SourceAttribution]:
        claims = self._claims_by_citation(text)
        attributions = []
        for number, chunk in enumerate(documents, 1):
            content_type = infer_content_type(chunk)
            attributions.append(
                SourceAttribution(
                    source=chunk.source_document or f"Document {number}",
                    chunk_id=chunk.id,
                    relevance=source_relevance(chunk),
                    used_for=USED_FOR.get(content_type, "supporting information"),
                    content_type=content_type,
                    claims=claims.get(number, []),
                    section=chunk.section_title,
                )
            )
        return attributions

    @staticmethod
    def _claims_by_citation(text: str) -> Dict[int, List[str]]:
        claims: Dict[int, List[str]] = {}
        for line in (text or "").splitlines():
            if line.strip().startswith(SOURCE_LABELS):
                continue
            previous = ""
            for sentence in split_sentences(line):
                numbers = [int(n) for n in CITATION.findall(sentence)]
                claim = normalize_whitespace(CITATION.sub("", sentence))
                claim = _SPACE_BEFORE_PUNCT.sub(r"\1", claim).lstrip("-*• ").strip()
                # "Fact. [1]" splits into "Fact." and "[1]"
                if not claim:
                    claim = previous
                previous = claim
                if not numbers or not claim:
                    continue
                for number in dict.fromkeys(numbers):
                    claims.setdefault(number, []).append(claim)
        return claims

    @staticmethod
    def assess_completeness(analysis: QueryAnalysis, documents: Sequence[Chunk]) -> str:
        """
        complete: every key entity (and a table when tabular data is needed)
        is supported by some document; partial: some are; needs_followup:
        none are, or there are no documents.
        """
        if not documents:
            return "needs_followup"

        texts = [f"{c.text}\n{c.source_document}\n{' '.join(c.headings_path)}".lower() for c in documents]
        checks = []
        for entity in analysis.key_entities:
            needle = entity.lower()
            checks.append(any(needle in text for text in texts))
        if "tables" in analysis.data_types_needed:
            checks.append(any(c.is_table for c in documents))

        if not checks or all(checks):
            return "complete"
        if any(checks):
            return "partial"
        return "needs_followup"

    @staticmethod
    def calculate_confidence(
        documents: Sequence[Chunk],
        completeness: str,
        attributions: Sequence[SourceAttribution] = (),
    ) -> float:
        if not documents:
            return 0.1
        confidence = 0.5 + min(0.2, len(documents) * 0.04)
        confidence += {"complete": 0.15, "partial": 0.0}.get(completeness, -0.2)
        if any(a.claims for a in attributions):
            confidence += 0.1
        return round(max(0.05, min(0.95, confidence)), 3)

    @staticmethod
    def _reasoning_chain(
        analysis: QueryAnalysis, documents: Sequence[Chunk], completeness: str
    ) -> List[str]:
        sources = list(dict.fromkeys(c.source_document for c in documents))
        chain = list(analysis.reasoning_steps)
        chain.append(f"Reviewed {len(documents)} passages from {len(sources)} source(s)")
        chain.append(f"Evidence coverage: {completeness}")
        return chain
