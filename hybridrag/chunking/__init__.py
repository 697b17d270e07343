"""
Document chunking.

    from hybridrag.chunking import HybridChunker
    chunks = HybridChunker(config.chunking).chunk(text, "report.md")
"""

from hybridrag.chunking.hybrid_chunker import HybridChunker
from hybridrag.chunking.models import Chunk, compute_content_hash
from hybridrag.chunking.tables import serialize_table
from hybridrag.chunking.tokenizer import TiktokenCounter, TokenCounter

__all__ = [
    "HybridChunker",
    "Chunk",
    "compute_content_hash",
    "serialize_table",
    "TiktokenCounter",
    "TokenCounter",
]
