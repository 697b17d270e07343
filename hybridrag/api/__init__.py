"""
HybridRAG HTTP API.

Build the app around an initialized service::

    service = RAGService(load_config())
    service.initialize()
    app = create_app(service)
"""

from hybridrag.api.app import create_app

__all__ = ["create_app"]
