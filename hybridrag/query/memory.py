"""
Conversation memory.

Tracks what a session has been about: recent turns, entity weights with
per-turn recency decay, and user interests that strengthen on mention and
decay otherwise. Used to pick prior turns relevant to a new question.
"""

import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from hybridrag.core.config import MemoryConfig
from hybridrag.query.analyzer import extract_entities
from hybridrag.query.models import QueryAnalysis
from hybridrag.shared.text import content_tokens

INITIAL_INTEREST = 0.3
INTEREST_STEP = 0.1
MIN_INTEREST = 0.1
MIN_ENTITY_WEIGHT = 0.05
MAX_ANSWER_ENTITIES = 5
MAX_CONCEPTS = 5
HISTORY_ANSWER_CHARS = 300


@dataclass
class ConversationTurn:
    question: str
    answer: str
    query_type: str
    key_entities: List[str] = field(default_factory=list)
    concepts: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "answer": self.answer,
            "queryType": self.query_type,
            "keyEntities": list(self.key_entities),
            "concepts": list(self.concepts),
            "sources": list(self.sources),
            "timestamp": self.timestamp,
        }


@dataclass
class UserInterest:
    topic: str
    strength: float


@dataclass
class ConversationContext:
    current_topic: str = "general"
    active_entities: List[str] = field(default_factory=list)
    user_interests: List[UserInterest] = field(default_factory=list)
    turn_history: List[ConversationTurn] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentTopic": self.current_topic,
            "activeEntities": list(self.active_entities),
            "userInterests": [
                {"topic": i.topic, "strength": round(i.strength, 3)} for i in self.user_interests
            ],
            "turnHistory": [t.to_dict() for t in self.turn_history],
        }


def _concepts(question: str, entities: Iterable[str]) -> List[str]:
    entity_words = {w.lower() for e in entities for w in e.split()}
    counts = Counter(
        t for t in content_tokens(question) if t not in entity_words and not t.isdigit()
    )
    return [t for t, _ in counts.most_common(MAX_CONCEPTS)]


class ConversationMemory:
    """Per-session conversation state."""

    def __init__(self, config: Optional[MemoryConfig] = None) -> None:
        self.config = config or MemoryConfig()
        self._lock = threading.Lock()
        self._turns: List[ConversationTurn] = []
        self._entity_weights: Dict[str, float] = {}
        self._interests: Dict[str, float] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)

    def update_context(
        self,
        question: str,
        answer: str,
        analysis: QueryAnalysis,
        sources: Iterable[str] = (),
    ) -> ConversationTurn:
        """Record a turn and update entity weights and interests."""
        entities = list(dict.fromkeys(
            list(analysis.key_entities) + extract_entities(answer)[:MAX_ANSWER_ENTITIES]
        ))
        turn = ConversationTurn(
            question=question,
            answer=answer,
            query_type=analysis.query_type.value,
            key_entities=entities,
            concepts=_concepts(question, entities),
            sources=list(dict.fromkeys(sources)),
        )

        with self._lock:
            self._turns.append(turn)
            if len(self._turns) > self.config.max_turns:
                self._turns = self._turns[-self.config.max_turns :]
            self._update_entities(entities)
            self._update_interests(turn.concepts + entities)
        return turn

    def _update_entities(self, entities: List[str]) -> None:
        for entity in list(self._entity_weights):
            self._entity_weights[entity] *= self.config.entity_decay
            if self._entity_weights[entity] < MIN_ENTITY_WEIGHT:
                del self._entity_weights[entity]
        for entity in entities:
            self._entity_weights[entity] = self._entity_weights.get(entity, 0.0) + 1.0

    def _update_interests(self, topics: List[str]) -> None:
        mentioned = set(topics)
        for topic in list(self._interests):
            if topic in mentioned:
                continue
            self._interests[topic] *= self.config.interest_decay
            if self._interests[topic] < MIN_INTEREST:
                del self._interests[topic]
        for topic in mentioned:
            current = self._interests.get(topic)
            self._interests[topic] = (
                INITIAL_INTEREST if current is None else min(1.0, current + INTEREST_STEP)
            )

    def get_relevant_history(
        self,
        new_question: str,
        key_entities: Optional[List[str]] = None,
        max_turns: int = 5,
    ) -> List[ConversationTurn]:
        """
        Prior turns sharing entities with the new question.

        Returns:
            Up to max_turns turns in chronological order; empty when nothing
            overlaps.
        """
        entities = key_entities if key_entities is not None else extract_entities(new_question)
        wanted = {e.lower() for e in entities}
        question_lower = new_question.lower()

        with self._lock:
            turns = list(self._turns)

        scored = []
        for position, turn in enumerate(turns):
            turn_entities = {e.lower() for e in turn.key_entities}
            overlap = len(turn_entities & wanted)
            overlap += sum(
                1 for e in turn_entities - wanted if e and e in question_lower
            )
            if overlap:
                scored.append((overlap, position, turn))

        scored.sort(key=lambda item: (-item[0], -item[1]))
        chosen = sorted(scored[: max(0, max_turns)], key=lambda item: item[1])
        return [turn for _, _, turn in chosen]

    @staticmethod
    def format_history(turns: Iterable[ConversationTurn]) -> str:
        parts = []
        for turn in turns:
            answer = turn.answer
            if len(answer) > HISTORY_ANSWER_CHARS:
                answer = answer[:HISTORY_ANSWER_CHARS] + "..."
            parts.append(f"User: {turn.question}\nAssistant: {answer}")
        return "\n\n".join(parts)

    def get_current_context(self) -> ConversationContext:
        with self._lock:
            turns = list(self._turns)
            weights = dict(self._entity_weights)
            interests = dict(self._interests)

        recent_concepts = Counter(c for turn in turns[-3:] for c in turn.concepts)
        current_topic = recent_concepts.most_common(1)[0][0] if recent_concepts else "general"
        active = sorted(weights, key=lambda e: (-weights[e], e))[:5]
        ranked_interests = sorted(interests.items(), key=lambda item: (-item[1], item[0]))[:10]

        return ConversationContext(
            current_topic=current_topic,
            active_entities=active,
            user_interests=[UserInterest(topic, strength) for topic, strength in ranked_interests],
            turn_history=turns,
        )

    def entity_weight(self, entity: str) -> float:
        with self._lock:
            return self._entity_weights.get(entity, 0.0)

    def clear_session(self) -> None:
        """Reset all state."""
        with self._lock:
            self._turns.clear()
            self._entity_weights.clear()
            self._interests.clear()
