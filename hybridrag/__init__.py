"""
HybridRAG - Hybrid retrieval-augmented question answering.

Chunks documents, indexes them lexically (BM25) and semantically (vector
store), fuses the rankings per question type, and synthesizes cited answers
with quality validation, caching and conversation memory.
"""

__version__ = "0.4.0"
__author__ = "HybridRAG Contributors"

__all__ = [
    "__version__",
    "Config",
    "load_config",
    "RAGService",
]


def __getattr__(name: str):  # type: ignore[no-untyped-def]
    """Resolve heavy top-level exports lazily."""
    if name == "Config":
        from hybridrag.core.config import Config

        return Config
    if name == "load_config":
        from hybridrag.core.config_loaders import load_config

        return load_config
    if name == "RAGService":
        from hybridrag.pipeline.service import RAGService

        return RAGService
    raise AttributeError(f"module 'hybridrag' has no attribute {name!r}")
