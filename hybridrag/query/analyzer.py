"""
Query analysis.

Classifies a question into a query type and complexity profile from
surface features only, so the same question always yields the same
analysis and no model call is needed before retrieval.

Precedence
----------
1. Comparison words ("compare", "versus", "difference between") → COMPARATIVE
2. Causal words ("why", "what caused", "reason for")            → INFERENTIAL
3. Multi-clause connectors with two or more entities           → SYNTHETIC
4. At most one entity, simple interrogative, single clause     → FACTUAL
5. Anything else                                               → ANALYTICAL
"""

import re
from typing import List, Optional

from hybridrag.core.logging import get_logger
from hybridrag.query.models import QueryAnalysis, QueryType
from hybridrag.shared.text import STOP_WORDS, contains_malayalam, normalize_whitespace

logger = get_logger(__name__)

MAX_COMPLEXITY = 5
MAX_SUGGESTED_K = 15
HISTORY_WINDOW_CHARS = 500
MAX_BORROWED_ENTITIES = 3

BASE_K = {
    QueryType.FACTUAL: 4,
    QueryType.INFERENTIAL: 6,
    QueryType.ANALYTICAL: 6,
    QueryType.COMPARATIVE: 8,
    QueryType.SYNTHETIC: 10,
}

COMPARATIVE_PATTERNS = [
    r"\bcompar(?:e|ed|ing|ison)\b",
    r"\bversus\b",
    r"\bvs\.?(?=\s|$)",
    r"\bdifferen(?:ce|ces|t) between\b",
    r"\bdiffer(?:s)? from\b",
    r"\b(?:better|worse|higher|lower|larger|smaller) than\b",
    r"\bsimilarit(?:y|ies)\b",
    r"\bcontrast\b",
    r"താരതമ്യ",
    r"വ്യത്യാസ",
]

CAUSAL_PATTERNS = [
    r"\bwhy\b",
    r"\bwhat (?:caused|causes|led to|leads to|made)\b",
    r"\breasons? (?:for|behind|why)\b",
    r"\bcaused by\b",
    r"\bdue to\b",
    r"\bresult(?:ed)? in\b",
    r"എന്തുകൊണ്ട്",
    r"കാരണ",
]

CONNECTOR_PATTERNS = [
    r"\band\b",
    r"\bas well as\b",
    r"\balong with\b",
    r"\btogether with\b",
    r"\brelat(?:e|es|ed|ionship|ionships) (?:to|between|with)\b",
    r"\bimplications?\b",
    r"\bcombined?\b",
    r"\bin relation to\b",
]

CLAUSE_SPLIT = re.compile(
    r"\s*(?:;|,\s*(?:and|but|while|whereas)\b|\b(?:and|but|while|whereas|also|as well as)\b)\s*",
    re.IGNORECASE,
)

CROSS_REFERENCE_PATTERNS = [
    r"\bacross\b",
    r"\bbetween\b",
    r"\brelat(?:e|es|ed|ionship)\b",
    r"\bover time\b",
    r"\btrends?\b",
    r"\beach\b",
    r"\ball (?:the )?\w+s\b",
    r"\bimplications?\b",
]

INTERROGATIVES = {
    "what", "when", "where", "who", "whom", "which", "whose", "how",
    "is", "are", "was", "were", "does", "do", "did", "can", "list", "name",
}
ML_INTERROGATIVES = ("എന്ത്", "എന്താണ്", "എത്ര", "എപ്പോൾ", "എവിടെ", "ആര്", "ഏത്", "ഏതാണ്")

ANAPHORA = re.compile(
    r"\b(?:it|its|they|them|their|this|that|these|those|he|she|his|her|there)\b"
    r"|അത്|അവ|അവർ|ഇത്|ഇവ",
    re.IGNORECASE,
)

LEADING_VERBS = {
    "compare", "explain", "describe", "list", "tell", "show", "give",
    "summarize", "summarise", "analyze", "analyse", "discuss", "find",
    "name", "define", "please",
}

ML_STOP_WORDS = {
    "എന്ത്", "എന്താണ്", "എത്ര", "എപ്പോൾ", "എവിടെ", "ആര്", "ഏത്", "ഏതാണ്",
    "എങ്ങനെ", "എന്തുകൊണ്ട്", "ആണ്", "ഉണ്ട്", "ഒരു", "ഈ", "ആ", "എന്നിവ",
    "തമ്മിൽ", "എന്ന്", "എന്നാൽ", "പക്ഷേ", "കൂടാതെ", "ഇല്ല", "അത്", "ഇത്",
    "അവ", "അവർ", "ഇവ", "വേണ്ടി", "പറയുക", "വിശദീകരിക്കുക",
}

TABLE_CUES = re.compile(
    r"\b(?:table|data|statistics?|figures?|numbers?|how many|how much|percentage|"
    r"percent|amount|budget|population|rate|total|count|allocation)\b|\d|ബജറ്റ്|തുക|എത്ര",
    re.IGNORECASE,
)
CODE_CUES = re.compile(r"\b(?:code|function|script|snippet|api|command)\b", re.IGNORECASE)
CHART_CUES = re.compile(r"\b(?:chart|graph|trend|trends|over time|growth)\b", re.IGNORECASE)

_CAPITALIZED = re.compile(r"^[A-Z][\w'’.-]*$")
_ACRONYM = re.compile(r"^[A-Z0-9]{2,}$")
_QUOTED = re.compile(r"[\"“]([^\"”]{2,60})[\"”]")
_POSSESSIVE = re.compile(r"['’]s$")
_WORD = re.compile(r"[^\s,;:!?()\[\]{}]+")


def _matches_any(patterns: List[str], text: str) -> bool:
    return any(re.search(p, text, re.IGNORECASE) for p in patterns)


def extract_entities(text: str) -> List[str]:
    """
    Named entities by surface form.

    Quoted phrases, runs of capitalized words (not counting a sentence-initial
    question word or imperative verb), acronyms, and Malayalam content words.
    """
    entities: List[str] = []

    def _add(entity: str) -> None:
        entity = entity.strip(" .'’-")
        if entity and entity.lower() not in (e.lower() for e in entities):
            entities.append(entity)

    for quoted in _QUOTED.findall(text):
        _add(quoted)

    run: List[str] = []
    sentence_start = True
    for match in _WORD.finditer(text):
        word = match.group()
        if sentence_start and run:
            _add(" ".join(run))
            run = []
        clean = _POSSESSIVE.sub("", word.strip(".'’\"“”"))
        is_capitalized = bool(_CAPITALIZED.match(clean)) or bool(_ACRONYM.match(clean))
        skip = sentence_start and (
            clean.lower() in STOP_WORDS or clean.lower() in LEADING_VERBS or clean == "I"
        )
        if is_capitalized and not skip and not clean.isdigit():
            run.append(clean)
        else:
            if run:
                _add(" ".join(run))
            run = []
        sentence_start = word.endswith(".") or text[match.end() : match.end() + 1] in ("?", "!", ":", "\n")
    if run:
        _add(" ".join(run))

    if contains_malayalam(text):
        for word in _WORD.findall(text):
            clean = word.strip(".?!")
            if contains_malayalam(clean) and len(clean) >= 3 and clean not in ML_STOP_WORDS:
                _add(clean)

    return entities


def count_clauses(text: str) -> int:
    parts = [p for p in CLAUSE_SPLIT.split(text) if p and p.strip(" ?.")]
    questions = max(1, text.count("?"))
    return max(1, len(parts), questions)


def _is_simple_interrogative(text: str) -> bool:
    words = text.split()
    if not words:
        return False
    first = words[0].lower().strip("¿,")
    if first in INTERROGATIVES:
        return True
    return any(marker in text for marker in ML_INTERROGATIVES)


def _last_turn(chat_history: str) -> str:
    return chat_history[-HISTORY_WINDOW_CHARS:] if chat_history else ""


class QueryAnalyzer:
    """Deterministic surface-feature query classifier."""

    def classify_query(self, question: str, chat_history: str = "") -> QueryAnalysis:
        """
        Classify a question.

        Args:
            question: The user's question
            chat_history: Prior transcript; used to resolve pronouns like "it"

        Returns:
            QueryAnalysis with type, complexity, entities and suggested k
        """
        text = normalize_whitespace(question or "")
        entities = extract_entities(text)
        borrowed = self._borrow_entities(text, entities, chat_history)
        entities.extend(borrowed)

        clauses = count_clauses(text)
        query_type = self._classify(text, entities, clauses)
        cross_reference = len(entities) >= 2 or _matches_any(CROSS_REFERENCE_PATTERNS, text)
        complexity = self._complexity(len(entities), clauses, cross_reference)

        analysis = QueryAnalysis(
            query_type=query_type,
            complexity=complexity,
            key_entities=entities,
            requires_cross_reference=cross_reference,
            data_types_needed=self._data_types(text),
            reasoning_steps=self._reasoning_steps(query_type, entities),
            suggested_k=self.suggested_k(query_type, complexity),
        )
        logger.debug(
            "Classified query",
            query_type=query_type.value,
            complexity=complexity,
            entities=len(entities),
            borrowed=len(borrowed),
        )
        return analysis

    def _classify(self, text: str, entities: List[str], clauses: int) -> QueryType:
        if _matches_any(COMPARATIVE_PATTERNS, text):
            return QueryType.COMPARATIVE
        if _matches_any(CAUSAL_PATTERNS, text):
            return QueryType.INFERENTIAL
        if len(entities) >= 2 and _matches_any(CONNECTOR_PATTERNS, text):
            return QueryType.SYNTHETIC
        if len(entities) <= 1 and clauses == 1 and _is_simple_interrogative(text):
            return QueryType.FACTUAL
        return QueryType.ANALYTICAL

    @staticmethod
    def _complexity(entity_count: int, clauses: int, cross_reference: bool) -> int:
        score = 1
        score += min(2, max(0, entity_count - 1))
        score += min(1, clauses - 1)
        score += 1 if cross_reference else 0
        return max(1, min(MAX_COMPLEXITY, score))

    @staticmethod
    def suggested_k(query_type: QueryType, complexity: int) -> int:
        return min(MAX_SUGGESTED_K, BASE_K[query_type] + max(0, complexity - 2))

    @staticmethod
    def _borrow_entities(
        text: str, entities: List[str], chat_history: Optional[str]
    ) -> List[str]:
        """Entities from the last history turn when the question uses a pronoun."""
        if not chat_history or not ANAPHORA.search(text):
            return []
        known = {e.lower() for e in entities}
        borrowed = [
            e for e in extract_entities(_last_turn(chat_history)) if e.lower() not in known
        ]
        # Speaker labels in transcripts are not entities
        borrowed = [e for e in borrowed if e.lower() not in ("user", "assistant", "human", "ai")]
        return borrowed[:MAX_BORROWED_ENTITIES]

    @staticmethod
    def _data_types(text: str) -> List[str]:
        types = ["text"]
        if TABLE_CUES.search(text):
            types.append("tables")
        if CHART_CUES.search(text):
            types.append("charts")
        if CODE_CUES.search(text):
            types.append("code")
        return types

    @staticmethod
    def _reasoning_steps(query_type: QueryType, entities: List[str]) -> List[str]:
        subject = ", ".join(entities) if entities else "the topic"
        steps = {
            QueryType.FACTUAL: [
                f"Locate passages mentioning {subject}",
                "Extract the requested fact",
            ],
            QueryType.COMPARATIVE: [
                f"Collect facts for each of {subject}",
                "Align the facts on shared attributes",
                "State similarities and differences",
            ],
            QueryType.INFERENTIAL: [
                f"Gather evidence about {subject}",
                "Identify causes and effects in the evidence",
                "Draw a conclusion supported by citations",
            ],
            QueryType.SYNTHETIC: [
                f"Retrieve information on each of {subject}",
                "Connect the pieces across documents",
                "Summarize the combined insight",
            ],
            QueryType.ANALYTICAL: [
                f"Gather information about {subject}",
                "Identify patterns or trends",
                "Explain what they indicate",
            ],
        }
        return steps[query_type]
