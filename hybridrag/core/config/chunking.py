"""
Chunking configuration.

Token ceiling, peer-merge threshold and tokenizer encoding for the
hybrid chunker.
"""

from dataclasses import dataclass


@dataclass
class ChunkingConfig:
    """Hybrid chunker configuration."""

    max_tokens: int = 8191  # Hard ceiling per chunk (embedding model input limit)
    min_tokens: int = 64  # Peers below this are merged when they share a heading path
    merge_peers: bool = True
    tokenizer_encoding: str = "cl100k_base"
    min_quality_length: int = 50  # Tokens below which length quality is scaled down
