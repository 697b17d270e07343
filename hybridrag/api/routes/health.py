"""
Health and Admin API Endpoints.

Endpoints:
- GET /v1/health - Search, vector store, cache and quality status
- POST /v1/admin/circuit-breaker/reset - Force the vector store breaker closed
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from hybridrag import __version__
from hybridrag.api.routes.deps import get_service
from hybridrag.core.logging import get_logger
from hybridrag.pipeline.service import RAGService

logger = get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["health"])


class HealthResponse(BaseModel):
    status: str = Field(..., description="healthy, degraded or unhealthy")
    version: str
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    issues: List[str] = Field(default_factory=list)
    stats: Dict[str, Any] = Field(default_factory=dict)


class BreakerResetResponse(BaseModel):
    reset: bool
    circuit_breaker: Dict[str, Any]


@router.get("/health", response_model=HealthResponse, summary="Service health")
def health(service: RAGService = Depends(get_service)) -> HealthResponse:
    report = service.health_check()
    return HealthResponse(
        status=report["status"],
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        issues=report["issues"],
        stats=report["stats"],
    )


@router.post(
    "/admin/circuit-breaker/reset",
    response_model=BreakerResetResponse,
    summary="Reset the vector store circuit breaker",
)
def reset_circuit_breaker(service: RAGService = Depends(get_service)) -> BreakerResetResponse:
    state = service.reset_circuit_breaker()
    logger.warning("Circuit breaker reset via API")
    return BreakerResetResponse(reset=True, circuit_breaker=state)
