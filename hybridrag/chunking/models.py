"""Chunk data model and its vector-store payload encoding."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

CHUNK_TYPES = ("text", "table", "heading", "code")


def compute_content_hash(text: str) -> str:
    """sha256 of the lowercased, trimmed text (first 16 hex chars)."""
    return hashlib.sha256(text.strip().lower().encode("utf-8")).hexdigest()[:16]


def compute_chunk_id(source_document: str, ordinal: int, content_hash: str) -> str:
    key = f"{source_document}:{ordinal}:{content_hash}"
    return hashlib.md5(key.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class Chunk:
    """A retrievable segment of a source document.

    ``text`` is the searchable form (tables flattened into statements);
    ``source_text`` is the verbatim slice of the document the chunk covers.
    """

    id: str
    text: str
    source_document: str
    ordinal: int
    token_count: int
    headings_path: Tuple[str, ...] = ()
    chunk_type: str = "text"
    has_table: bool = False
    has_code: bool = False
    quality_score: float = 0.0
    semantic_tags: Tuple[str, ...] = ()
    source_text: str = ""
    content_hash: str = ""
    is_oversized: bool = False

    @property
    def section_title(self) -> str:
        return self.headings_path[-1] if self.headings_path else ""

    @property
    def is_table(self) -> bool:
        return self.chunk_type == "table" or self.has_table

    def to_metadata(self) -> Dict[str, Any]:
        """Flatten to scalar values accepted by vector database payloads."""
        return {
            "chunk_id": self.id,
            "text": self.text,
            "source_document": self.source_document,
            "ordinal": self.ordinal,
            "token_count": self.token_count,
            "headings_path": json.dumps(list(self.headings_path), ensure_ascii=False),
            "chunk_type": self.chunk_type,
            "has_table": self.has_table,
            "has_code": self.has_code,
            "quality_score": self.quality_score,
            "semantic_tags": json.dumps(list(self.semantic_tags), ensure_ascii=False),
            "source_text": self.source_text,
            "content_hash": self.content_hash,
            "is_oversized": self.is_oversized,
        }

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any]) -> "Chunk":
        return cls(
            id=str(metadata["chunk_id"]),
            text=str(metadata.get("text", "")),
            source_document=str(metadata.get("source_document", "")),
            ordinal=int(metadata.get("ordinal", 0)),
            token_count=int(metadata.get("token_count", 0)),
            headings_path=tuple(_load_list(metadata.get("headings_path"))),
            chunk_type=str(metadata.get("chunk_type", "text")),
            has_table=bool(metadata.get("has_table", False)),
            has_code=bool(metadata.get("has_code", False)),
            quality_score=float(metadata.get("quality_score", 0.0)),
            semantic_tags=tuple(_load_list(metadata.get("semantic_tags"))),
            source_text=str(metadata.get("source_text", "")),
            content_hash=str(metadata.get("content_hash", "")),
            is_oversized=bool(metadata.get("is_oversized", False)),
        )


def _load_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(v) for v in json.loads(value)]


@dataclass
class Block:
    """A parsed structural element of a document."""

    kind: str  # heading, paragraph, list, table, code
    text: str
    level: int = 0  # heading level
    title: str = ""  # heading title
    rows: List[List[str]] = field(default_factory=list)  # table cells
