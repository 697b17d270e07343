"""
Unicode-aware text helpers shared by the index, analyzer and validator.

Malayalam words carry vowel signs (Unicode categories Mn/Mc) that Python's
``\\w`` does not match, so tokenization strips punctuation and symbol
characters by category instead of splitting on ``\\W``.
"""

import re
import unicodedata
from typing import List

MALAYALAM_RANGE = re.compile(r"[ഀ-ൿ]")
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?।])\s+")
_WHITESPACE = re.compile(r"\s+")

STOP_WORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "if", "then", "so", "of", "in",
        "on", "at", "to", "for", "from", "by", "with", "about", "as", "into",
        "is", "are", "was", "were", "be", "been", "being", "am", "do", "does",
        "did", "has", "have", "had", "it", "its", "this", "that", "these",
        "those", "there", "their", "they", "them", "he", "she", "we", "you",
        "i", "me", "my", "our", "your", "his", "her", "what", "which", "who",
        "whom", "when", "where", "why", "how", "can", "could", "would",
        "should", "will", "shall", "may", "might", "must", "not", "no", "than",
        "also", "any", "all", "each", "some", "such", "per", "s",
    }
)

MIN_TOKEN_LENGTH = 2
MAX_TOKEN_LENGTH = 50


def _strip_punctuation(text: str) -> str:
    return "".join(
        " " if unicodedata.category(ch)[0] in ("P", "S") else ch for ch in text
    )


def tokenize(text: str, keep_numbers: bool = False) -> List[str]:
    """Lowercase, strip punctuation and symbols, and split on whitespace.

    Keeps tokens of 2-50 characters. Pure numbers are dropped unless
    ``keep_numbers`` is set.
    """
    if not text:
        return []
    tokens = []
    for token in _strip_punctuation(text.lower()).split():
        if not MIN_TOKEN_LENGTH <= len(token) <= MAX_TOKEN_LENGTH:
            if not (keep_numbers and token.isdigit()):
                continue
        if token.isdigit() and not keep_numbers:
            continue
        tokens.append(token)
    return tokens


def content_tokens(text: str) -> List[str]:
    """Tokens minus stop words, numbers kept."""
    return [t for t in tokenize(text, keep_numbers=True) if t not in STOP_WORDS]


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def split_sentences(text: str) -> List[str]:
    """Split on sentence-final punctuation followed by whitespace."""
    return [s.strip() for s in SENTENCE_BOUNDARY.split(text) if s.strip()]


def contains_malayalam(text: str) -> bool:
    return bool(MALAYALAM_RANGE.search(text))
