"""
Core layer: logging, configuration, retry, circuit breaking and errors.

Every other package depends on these modules; nothing here imports from
the feature packages.
"""

from hybridrag.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerState,
    CircuitState,
)
from hybridrag.core.exceptions import (
    CircuitOpenError,
    HybridRAGError,
    ValidationError,
)
from hybridrag.core.logging import get_logger

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerState",
    "CircuitState",
    "CircuitOpenError",
    "HybridRAGError",
    "ValidationError",
    "get_logger",
]
