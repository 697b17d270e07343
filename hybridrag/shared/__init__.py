"""Shared helpers used across packages."""

from hybridrag.shared.lazy_imports import lazy_property
from hybridrag.shared.text import (
    content_tokens,
    contains_malayalam,
    normalize_whitespace,
    split_sentences,
    tokenize,
)

__all__ = [
    "lazy_property",
    "content_tokens",
    "contains_malayalam",
    "normalize_whitespace",
    "split_sentences",
    "tokenize",
]
