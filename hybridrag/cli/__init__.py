"""HybridRAG command-line interface."""

from hybridrag.cli.main import app

__all__ = ["app"]
