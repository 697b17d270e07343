"""Hybrid structure-aware chunking.

Splits documents along heading boundaries first, then packs blocks into
chunks under a token ceiling. Tables and code fences are atomic: each
becomes its own chunk, and one that alone exceeds the ceiling is emitted
whole with ``is_oversized=True``. Long paragraphs split at sentence
boundaries, then at whitespace; never mid-token.

Every chunk keeps the verbatim ``source_text`` it was cut from, so joining
them in order reconstructs the document modulo whitespace.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from hybridrag.chunking.models import (
    Block,
    Chunk,
    compute_chunk_id,
    compute_content_hash,
)
from hybridrag.chunking.parser import parse_blocks
from hybridrag.chunking.quality_scorer import ChunkQualityScorer
from hybridrag.chunking.tables import serialize_table
from hybridrag.chunking.tokenizer import TiktokenCounter, TokenCounter
from hybridrag.core.config import ChunkingConfig
from hybridrag.core.exceptions import ChunkingError
from hybridrag.core.logging import get_logger
from hybridrag.shared.text import contains_malayalam, split_sentences

logger = get_logger(__name__)

JOINER = "\n\n"


@dataclass
class _Unit:
    """Smallest piece the packer places: a block or part of one."""

    kind: str  # heading, text, table, code
    text: str
    source_text: str
    tokens: int
    has_list: bool = False

    @property
    def atomic(self) -> bool:
        return self.kind in ("table", "code")


@dataclass
class _Draft:
    path: Tuple[str, ...]
    units: List[_Unit] = field(default_factory=list)
    tokens: int = 0

    @property
    def kind(self) -> str:
        kinds = {u.kind for u in self.units}
        if kinds == {"heading"}:
            return "heading"
        if "table" in kinds:
            return "table"
        if "code" in kinds:
            return "code"
        return "text"

    @property
    def text(self) -> str:
        return JOINER.join(u.text for u in self.units)

    @property
    def source_text(self) -> str:
        return JOINER.join(u.source_text for u in self.units)


class HybridChunker:
    """Structure-aware chunker with a hard token ceiling.

    Args:
        config: Chunking settings (ceiling, merge threshold, encoding).
        token_counter: Counter used for the ceiling; defaults to tiktoken.
    """

    def __init__(
        self,
        config: Optional[ChunkingConfig] = None,
        token_counter: Optional[TokenCounter] = None,
    ) -> None:
        self.config = config or ChunkingConfig()
        self.counter = token_counter or TiktokenCounter(self.config.tokenizer_encoding)
        self.max_tokens = self.config.max_tokens
        self.joiner_tokens = self.counter.count(JOINER)
        self.scorer = ChunkQualityScorer(
            max_tokens=self.max_tokens,
            min_tokens=self.config.min_quality_length,
        )

    def chunk(self, text: str, source_document: str) -> List[Chunk]:
        """Segment a document into ordered chunks.

        Args:
            text: Markdown or plain text.
            source_document: Provenance label (file name or URI).

        Returns:
            Chunks in document order with ordinals 0..n-1.
        """
        if not source_document:
            raise ChunkingError("source_document is required")
        if not text or not text.strip():
            return []

        drafts: List[_Draft] = []
        for path, blocks in self._sections(parse_blocks(text)):
            drafts.extend(self._pack_section(path, blocks))

        if self.config.merge_peers:
            drafts = self._merge_peers(drafts)

        chunks = [
            self._build_chunk(draft, source_document, ordinal)
            for ordinal, draft in enumerate(drafts)
        ]
        logger.debug(
            "Chunked document",
            source=source_document,
            chunks=len(chunks),
            oversized=sum(1 for c in chunks if c.is_oversized),
        )
        return chunks

    # ------------------------------------------------------------------
    # Sectioning
    # ------------------------------------------------------------------

    def _sections(
        self, blocks: Sequence[Block]
    ) -> List[Tuple[Tuple[str, ...], List[Block]]]:
        """Group blocks under their heading, tracking the heading path by level."""
        sections: List[Tuple[Tuple[str, ...], List[Block]]] = []
        stack: List[Tuple[int, str]] = []
        current: List[Block] = []
        current_path: Tuple[str, ...] = ()

        for block in blocks:
            if block.kind == "heading":
                if current:
                    sections.append((current_path, current))
                while stack and stack[-1][0] >= block.level:
                    stack.pop()
                stack.append((block.level, block.title))
                current_path = tuple(title for _, title in stack)
                current = [block]
            else:
                current.append(block)

        if current:
            sections.append((current_path, current))
        return sections

    # ------------------------------------------------------------------
    # Packing
    # ------------------------------------------------------------------

    def _pack_section(
        self, path: Tuple[str, ...], blocks: Sequence[Block]
    ) -> List[_Draft]:
        # Draft token totals are running sums of unit counts; _settle
        # replaces them with one exact count when a draft is closed.
        drafts: List[_Draft] = []
        current = _Draft(path=path)

        for block in blocks:
            for unit in self._units(block):
                if unit.atomic:
                    if current.units:
                        drafts.extend(self._settle(current))
                    drafts.append(_Draft(path=path, units=[unit], tokens=unit.tokens))
                    current = _Draft(path=path)
                    continue

                if current.units and not self._fits(current.tokens, unit.tokens):
                    drafts.extend(self._settle(current))
                    current = _Draft(path=path)
                current.tokens += unit.tokens + (self.joiner_tokens if current.units else 0)
                current.units.append(unit)

        if current.units:
            drafts.extend(self._settle(current))
        return drafts

    def _fits(self, left_tokens: int, right_tokens: int) -> bool:
        return left_tokens + self.joiner_tokens + right_tokens <= self.max_tokens

    def _settle(self, draft: _Draft) -> List[_Draft]:
        """Count a finished draft exactly, halving the rare one the estimate let overshoot."""
        draft.tokens = self.counter.count(draft.text)
        if draft.tokens <= self.max_tokens or len(draft.units) == 1:
            return [draft]
        middle = len(draft.units) // 2
        return self._settle(_Draft(draft.path, draft.units[:middle])) + self._settle(
            _Draft(draft.path, draft.units[middle:])
        )

    def _units(self, block: Block) -> List[_Unit]:
        if block.kind == "heading":
            return [self._unit("heading", block.text)]
        if block.kind == "code":
            return [self._unit("code", block.text)]
        if block.kind == "table":
            serialized = serialize_table(block.rows) or block.text
            return [self._unit("table", serialized, source_text=block.text)]

        has_list = block.kind == "list"
        unit = self._unit("text", block.text, has_list=has_list)
        if unit.tokens <= self.max_tokens:
            return [unit]
        return [
            self._unit("text", piece, has_list=has_list)
            for piece in self._split_text(block.text)
        ]

    def _unit(
        self,
        kind: str,
        text: str,
        source_text: Optional[str] = None,
        has_list: bool = False,
    ) -> _Unit:
        return _Unit(
            kind=kind,
            text=text,
            source_text=text if source_text is None else source_text,
            tokens=self.counter.count(text),
            has_list=has_list,
        )

    def _split_text(self, text: str) -> List[str]:
        """Split oversized prose at sentence boundaries, then at whitespace."""
        pieces: List[str] = []
        for sentence in split_sentences(text):
            if self.counter.count(sentence) <= self.max_tokens:
                pieces.append(sentence)
            else:
                pieces.extend(self._split_words(sentence))
        return pieces

    def _split_words(self, sentence: str) -> List[str]:
        """Greedy word packing; each word is counted once with its leading space."""
        pieces: List[str] = []
        current: List[str] = []
        tokens = 0
        for word in sentence.split():
            cost = self.counter.count(f" {word}" if current else word)
            if current and tokens + cost > self.max_tokens:
                pieces.extend(self._settle_words(current))
                current = [word]
                tokens = self.counter.count(word)
            else:
                current.append(word)
                tokens += cost
        if current:
            pieces.extend(self._settle_words(current))
        return pieces

    def _settle_words(self, words: List[str]) -> List[str]:
        text = " ".join(words)
        if len(words) == 1 or self.counter.count(text) <= self.max_tokens:
            return [text]
        middle = len(words) // 2
        return self._settle_words(words[:middle]) + self._settle_words(words[middle:])

    # ------------------------------------------------------------------
    # Peer merging
    # ------------------------------------------------------------------

    def _merge_peers(self, drafts: List[_Draft]) -> List[_Draft]:
        """Merge adjacent undersized prose chunks that share a heading path."""
        merged: List[_Draft] = []
        grown: set = set()
        for draft in drafts:
            previous = merged[-1] if merged else None
            if previous is not None and self._can_merge(previous, draft):
                previous.units.extend(draft.units)
                previous.tokens += self.joiner_tokens + draft.tokens
                grown.add(id(previous))
                continue
            merged.append(draft)

        if not grown:
            return merged
        settled: List[_Draft] = []
        for draft in merged:
            if id(draft) in grown:
                settled.extend(self._settle(draft))
            else:
                settled.append(draft)
        return settled

    def _can_merge(self, left: _Draft, right: _Draft) -> bool:
        if left.path != right.path:
            return False
        if left.kind in ("table", "code") or right.kind in ("table", "code"):
            return False
        undersized = min(left.tokens, right.tokens) < self.config.min_tokens
        return undersized and self._fits(left.tokens, right.tokens)

    # ------------------------------------------------------------------
    # Chunk construction
    # ------------------------------------------------------------------

    def _build_chunk(self, draft: _Draft, source_document: str, ordinal: int) -> Chunk:
        text = draft.text
        kind = draft.kind
        token_count = self.counter.count(text)
        has_list = any(u.has_list for u in draft.units)
        content_hash = compute_content_hash(text)
        metrics = self.scorer.score(text, token_count, kind, draft.path, has_list)

        return Chunk(
            id=compute_chunk_id(source_document, ordinal, content_hash),
            text=text,
            source_document=source_document,
            ordinal=ordinal,
            token_count=token_count,
            headings_path=draft.path,
            chunk_type=kind,
            has_table=kind == "table",
            has_code=kind == "code",
            quality_score=metrics.overall_score,
            semantic_tags=self._semantic_tags(text, kind, has_list),
            source_text=draft.source_text,
            content_hash=content_hash,
            is_oversized=token_count > self.max_tokens,
        )

    @staticmethod
    def _semantic_tags(text: str, kind: str, has_list: bool) -> Tuple[str, ...]:
        tags = []
        if kind != "text":
            tags.append(kind)
        if has_list:
            tags.append("list")
        if any(ch.isdigit() for ch in text):
            tags.append("numeric")
        if contains_malayalam(text):
            tags.append("malayalam")
        if any("a" <= ch.lower() <= "z" for ch in text):
            tags.append("english")
        return tuple(tags)
