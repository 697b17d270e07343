"""Namespace derivation for vector records.

A namespace is a pure function of chunk metadata, so re-embedding the same
chunk always targets the same namespace and the same vector id:

    >>> determine_namespace({"chunk_type": "table", "source_document": "Budget 2024.md"})
    'tables-budget-2024'
"""

import hashlib
import re
from pathlib import PurePath
from typing import Any, Mapping

MAX_SLUG_LENGTH = 40
_NON_SLUG = re.compile(r"[^a-z0-9]+")


def _content_kind(metadata: Mapping[str, Any]) -> str:
    chunk_type = str(metadata.get("chunk_type", "text"))
    if chunk_type == "table" or bool(metadata.get("has_table", False)):
        return "tables"
    if chunk_type == "code" or bool(metadata.get("has_code", False)):
        return "code"
    return "documents"


def source_slug(source_document: str) -> str:
    """ASCII slug of a source's file stem, hashed when nothing ASCII remains."""
    stem = PurePath(source_document).stem if source_document else ""
    slug = _NON_SLUG.sub("-", stem.lower()).strip("-")[:MAX_SLUG_LENGTH].strip("-")
    if slug:
        return slug
    if not source_document:
        return "unknown"
    return "src-" + hashlib.md5(source_document.encode("utf-8")).hexdigest()[:8]


def determine_namespace(metadata: Mapping[str, Any]) -> str:
    """Return ``<content-kind>-<source-slug>`` for a chunk's metadata."""
    return f"{_content_kind(metadata)}-{source_slug(str(metadata.get('source_document', '')))}"
