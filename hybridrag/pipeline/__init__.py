"""
Question-answering pipeline.

RAGService wires chunking, storage, retrieval, query understanding,
synthesis and validation into call_chain() and stream_chain().
"""

from hybridrag.pipeline.models import ChainResult, StreamEvent
from hybridrag.pipeline.service import RAGService

__all__ = ["ChainResult", "RAGService", "StreamEvent"]
