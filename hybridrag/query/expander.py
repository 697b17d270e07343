"""
Query expansion for improved recall.

Expands a query with synonym substitutions (English and Malayalam), related
concepts, variations drawn from the conversation, and sub-queries for
multi-part questions. The combined list is what the hybrid search engine
runs; per-document scores take the best match across all of them.

Lookups are cached per normalized term in bounded LRU caches;
``observe_corpus()`` adds co-occurrence based concepts learned from
ingested chunk text.
"""

import re
import threading
from collections import Counter, OrderedDict
from typing import Dict, Iterable, List, Optional

from hybridrag.core.logging import get_logger
from hybridrag.query.analyzer import CLAUSE_SPLIT, extract_entities
from hybridrag.query.models import QueryAnalysis, QueryExpansion, QueryType
from hybridrag.shared.text import content_tokens, contains_malayalam

logger = get_logger(__name__)

MAX_SYNONYM_VARIANTS = 2
MAX_CONCEPT_VARIANTS = 3
MAX_CONTEXTUAL_VARIANTS = 2
MAX_SUB_QUERIES = 3
HISTORY_WINDOW_CHARS = 800
MIN_COOCCURRENCE = 2
TERMS_PER_TEXT = 30
DEFAULT_TERM_CACHE_SIZE = 2000

SYNONYMS: Dict[str, List[str]] = {
    "budget": ["allocation", "funds", "ബജറ്റ്"],
    "school": ["educational institution", "സ്കൂൾ"],
    "hospital": ["health centre", "ആശുപത്രി"],
    "population": ["inhabitants", "ജനസംഖ്യ"],
    "road": ["highway", "റോഡ്"],
    "water": ["drinking water", "കുടിവെള്ളം"],
    "project": ["scheme", "പദ്ധതി"],
    "panchayat": ["local body", "പഞ്ചായത്ത്"],
    "ward": ["division", "വാർഡ്"],
    "development": ["progress", "വികസനം"],
    "education": ["schooling", "വിദ്യാഭ്യാസം"],
    "health": ["healthcare", "ആരോഗ്യം"],
    "agriculture": ["farming", "കൃഷി"],
    "electricity": ["power supply", "വൈദ്യുതി"],
    "house": ["housing", "വീട്"],
    "cost": ["expenditure", "ചെലവ്"],
    "amount": ["total", "തുക"],
    "increase": ["growth", "rise"],
    "decrease": ["decline", "reduction"],
    "requirements": ["prerequisites", "criteria"],
    "process": ["procedure", "steps"],
    "deadline": ["due date", "time limit"],
}

CONCEPTS: Dict[str, List[str]] = {
    "budget": ["expenditure", "revenue", "fund utilisation"],
    "school": ["students", "teachers", "infrastructure"],
    "hospital": ["doctors", "patients", "primary health centre"],
    "water": ["water supply", "wells", "pipeline"],
    "road": ["infrastructure", "transport", "maintenance"],
    "agriculture": ["crops", "irrigation", "farmers"],
    "population": ["households", "census", "literacy"],
    "project": ["implementation", "beneficiaries", "funding"],
    "education": ["schools", "literacy", "students"],
    "health": ["hospitals", "sanitation", "vaccination"],
    "electricity": ["street lights", "connections", "power"],
    "house": ["beneficiaries", "shelter", "housing scheme"],
}

DECOMPOSABLE = (QueryType.SYNTHETIC, QueryType.ANALYTICAL, QueryType.COMPARATIVE)

# Words that frame a question rather than name its topic
FRAMING_WORDS = {
    "compare", "comparison", "versus", "vs", "difference", "differences",
    "between", "similarities", "contrast", "relate", "relationship",
    "implications", "explain", "describe", "tell", "analyze", "analyse",
    "trend", "trends", "both",
}


def _dedupe(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        text = " ".join(item.split())
        if text and text.lower() not in seen:
            seen.add(text.lower())
            result.append(text)
    return result


class QueryExpander:
    """
    Expand queries for improved retrieval recall.

    Techniques:
    - Synonym substitution (lookup table, Malayalam equivalents included)
    - Related concepts (lookup table plus corpus co-occurrence)
    - Contextual variations from chat history entities
    - Sub-query decomposition by entity or by clause
    """

    def __init__(
        self,
        synonyms: Optional[Dict[str, List[str]]] = None,
        concepts: Optional[Dict[str, List[str]]] = None,
        max_cache_size: int = DEFAULT_TERM_CACHE_SIZE,
    ) -> None:
        self.synonyms = dict(SYNONYMS if synonyms is None else synonyms)
        self.concepts = dict(CONCEPTS if concepts is None else concepts)

        # Malayalam equivalents map back to their English term
        self._reverse_synonyms: Dict[str, List[str]] = {}
        for term, alternatives in self.synonyms.items():
            for alternative in alternatives:
                if contains_malayalam(alternative):
                    self._reverse_synonyms.setdefault(alternative, []).append(term)

        self._lock = threading.Lock()
        self._cooccurrence: Dict[str, Counter] = {}
        self.max_cache_size = max(1, max_cache_size)
        self._synonym_cache: "OrderedDict[str, List[str]]" = OrderedDict()
        self._concept_cache: "OrderedDict[str, List[str]]" = OrderedDict()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def expand_query(
        self, query: str, analysis: QueryAnalysis, chat_history: str = ""
    ) -> QueryExpansion:
        """
        Expand query into alternative formulations.

        Args:
            query: Original query
            analysis: Classification of the query
            chat_history: Prior transcript for contextual variations

        Returns:
            QueryExpansion whose expanded_queries starts with the original
        """
        query = " ".join((query or "").split())
        terms = list(dict.fromkeys(content_tokens(query)))

        synonym_variants = self._synonym_variants(query, terms)
        concept_variants = self._concept_variants(terms)
        contextual = self._contextual_variants(query, chat_history)
        sub_queries = self.generate_sub_queries(query, analysis)

        expanded = _dedupe(
            [query]
            + synonym_variants[:MAX_SYNONYM_VARIANTS]
            + concept_variants[:MAX_CONCEPT_VARIANTS]
            + contextual[:MAX_CONTEXTUAL_VARIANTS]
            + sub_queries[:MAX_SUB_QUERIES]
        )
        logger.debug("Expanded query", variants=len(expanded) - 1)
        return QueryExpansion(
            original_query=query,
            expanded_queries=expanded,
            synonyms=synonym_variants,
            related_concepts=concept_variants,
            sub_queries=sub_queries,
        )

    def observe_corpus(self, texts: Iterable[str]) -> int:
        """Learn term co-occurrence from corpus text; returns texts seen."""
        seen = 0
        with self._lock:
            for text in texts:
                counts = Counter(
                    t for t in content_tokens(text) if len(t) >= 3 and not t.isdigit()
                )
                top_terms = [t for t, _ in counts.most_common(TERMS_PER_TEXT)]
                for term in top_terms:
                    related = self._cooccurrence.setdefault(term, Counter())
                    related.update(other for other in top_terms if other != term)
                seen += 1
            self._concept_cache.clear()
        return seen

    def get_cache_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "concept_cache_size": len(self._concept_cache),
                "synonym_cache_size": len(self._synonym_cache),
            }

    def clear_cache(self) -> None:
        with self._lock:
            self._concept_cache.clear()
            self._synonym_cache.clear()

    # ------------------------------------------------------------------
    # Term lookups
    # ------------------------------------------------------------------

    def synonyms_for(self, term: str) -> List[str]:
        key = term.lower()
        with self._lock:
            cached = self._synonym_cache.get(key)
            if cached is not None:
                self._synonym_cache.move_to_end(key)
                return cached
            result = list(self.synonyms.get(key, [])) + self._reverse_synonyms.get(term, [])
            if not result and key.endswith("s"):
                result = list(self.synonyms.get(key[:-1], []))
            self._remember(self._synonym_cache, key, result)
            return result

    def concepts_for(self, term: str) -> List[str]:
        key = term.lower()
        with self._lock:
            cached = self._concept_cache.get(key)
            if cached is not None:
                self._concept_cache.move_to_end(key)
                return cached
            base = key if key in self.concepts or not key.endswith("s") else key[:-1]
            result = list(self.concepts.get(base, []))
            related = self._cooccurrence.get(key)
            if related:
                result.extend(
                    other
                    for other, count in related.most_common(3)
                    if count >= MIN_COOCCURRENCE and other not in result
                )
            self._remember(self._concept_cache, key, result)
            return result

    def _remember(self, cache: "OrderedDict[str, List[str]]", key: str, value: List[str]) -> None:
        """Store under the lock, evicting the least recently used term when full."""
        cache[key] = value
        while len(cache) > self.max_cache_size:
            cache.popitem(last=False)

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    def _synonym_variants(self, query: str, terms: List[str]) -> List[str]:
        variants = []
        for term in terms:
            for synonym in self.synonyms_for(term):
                pattern = re.compile(rf"(?<!\w){re.escape(term)}(?!\w)", re.IGNORECASE)
                variant = pattern.sub(synonym, query, count=1)
                if variant != query:
                    variants.append(variant)
        return _dedupe(variants)

    def _concept_variants(self, terms: List[str]) -> List[str]:
        variants = []
        for term in terms:
            variants.extend(f"{term} {concept}" for concept in self.concepts_for(term))
        return _dedupe(variants)

    def _contextual_variants(self, query: str, chat_history: str) -> List[str]:
        if not chat_history or not chat_history.strip():
            return []
        lowered = query.lower()
        entities = [
            e
            for e in extract_entities(chat_history[-HISTORY_WINDOW_CHARS:])
            if e.lower() not in lowered
            and e.lower() not in ("user", "assistant", "human", "ai")
        ]
        # Most recent mentions first
        return _dedupe(f"{query} {entity}" for entity in reversed(entities))

    def generate_sub_queries(self, query: str, analysis: QueryAnalysis) -> List[str]:
        """Decompose a multi-part question by entity, else by clause."""
        if analysis.query_type not in DECOMPOSABLE or analysis.complexity < 2:
            return []

        entities = analysis.key_entities
        if len(entities) >= 2:
            entity_words = {w.lower() for e in entities for w in e.split()}
            topic = [
                t
                for t in content_tokens(query)
                if t not in entity_words and t not in FRAMING_WORDS
            ]
            topic_text = " ".join(dict.fromkeys(topic))
            return _dedupe(f"{entity} {topic_text}".strip() for entity in entities)

        clauses = [c.strip(" ?.,") for c in CLAUSE_SPLIT.split(query) if c]
        clauses = [c for c in clauses if len(content_tokens(c)) >= 2]
        if len(clauses) < 2:
            return []
        return _dedupe(f"{c}?" for c in clauses)
