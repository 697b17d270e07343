"""FastAPI application factory."""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hybridrag import __version__
from hybridrag.api.routes.chat import router as chat_router
from hybridrag.api.routes.health import router as health_router
from hybridrag.core.config import APIConfig
from hybridrag.core.logging import get_logger
from hybridrag.pipeline.service import RAGService

logger = get_logger(__name__)


def create_app(service: RAGService, api_config: Optional[APIConfig] = None) -> FastAPI:
    """
    Create the API app bound to one service instance.

    Args:
        service: The service handling requests; the caller owns its lifecycle
        api_config: Server settings (defaults to the service's config)

    Returns:
        FastAPI application
    """
    api_config = api_config or service.config.api
    app = FastAPI(title="HybridRAG API", version=__version__)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(api_config.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)
    app.include_router(health_router)

    logger.info("API app created", cors_origins=len(api_config.cors_origins))
    return app
