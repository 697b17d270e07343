"""
Token counting for chunk sizing.

The chunk ceiling is measured in embedding-model tokens. TiktokenCounter
uses the same BPE encoding as OpenAI embedding models; any object with a
``count(text) -> int`` method can be injected instead.
"""

from abc import ABC, abstractmethod
from typing import Any

from hybridrag.shared.lazy_imports import lazy_property


class TokenCounter(ABC):
    """Counts tokens in a piece of text."""

    @abstractmethod
    def count(self, text: str) -> int:
        ...


class TiktokenCounter(TokenCounter):
    """tiktoken-backed counter (``cl100k_base`` by default)."""

    def __init__(self, encoding_name: str = "cl100k_base") -> None:
        self.encoding_name = encoding_name

    @lazy_property
    def encoding(self) -> Any:
        import tiktoken

        return tiktoken.get_encoding(self.encoding_name)

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode(text, disallowed_special=()))
