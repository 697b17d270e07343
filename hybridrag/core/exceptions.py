"""
Centralized Exception Hierarchy for HybridRAG.

All exceptions inherit from HybridRAGError so callers can catch any
pipeline failure with a single clause while still handling specific
conditions (an open circuit, invalid input) separately.

Each exception carries:
- error_code: Unique identifier (e.g., "HR-VEC-002")
- why_it_happened: Explanation of the root cause
- how_to_fix: Actionable steps to resolve the issue

Exception Hierarchy
-------------------
    HybridRAGError (base)
    ├── ValidationError
    ├── ChunkingError
    ├── VectorStoreError
    │   ├── CircuitOpenError
    │   └── EmbeddingError
    ├── IndexNotReadyError
    ├── SearchError
    ├── SynthesisError
    ├── CacheError
    └── StreamingError

LLM provider failures live with the clients in ``hybridrag.llm.base``.
"""

import re
from typing import List, Optional


def sanitize_path(path: str) -> str:
    """Replace user home directories and key-like strings in a path."""
    if not path:
        return path

    patterns = [
        (r"[A-Za-z]:\\Users\\[^\\]+", r"<user-home>"),
        (r"/(?:home|Users)/[^/]+", r"<user-home>"),
        (r"[a-zA-Z0-9]{32,}", r"<key>"),
    ]

    result = path
    for pattern, replacement in patterns:
        result = re.sub(pattern, replacement, result)
    return result


def sanitize_message(message: str) -> str:
    """Sanitize an error message to avoid leaking sensitive info.

    Removes or masks API keys, bearer tokens, credentials in URLs and
    user home paths.

    Args:
        message: Original error message

    Returns:
        Sanitized message with sensitive info replaced
    """
    if not message:
        return message

    result = message
    patterns = [
        (r"(sk-|pk-|api_key[=:][\s]*)[a-zA-Z0-9_-]{20,}", r"\1<api-key>"),
        (r"(ANTHROPIC_API_KEY|OPENAI_API_KEY|API_KEY)[=:]\s*[^\s]+", r"\1=<hidden>"),
        (r"Bearer\s+[a-zA-Z0-9_.-]+", r"Bearer <token>"),
        (r"://[^:/\s]+:[^@\s]+@", r"://<user>:<pass>@"),
        (r"[a-fA-F0-9]{40,}", r"<hash>"),
    ]
    for pattern, replacement in patterns:
        result = re.sub(pattern, replacement, result)

    result = re.sub(
        r"/(?:home|Users)/[^\s\"']+", lambda m: sanitize_path(m.group(0)), result
    )
    return result


class HybridRAGError(Exception):
    """
    Base exception for all HybridRAG errors.

    Example
    -------
        try:
            service.call_chain(question)
        except HybridRAGError as e:
            logger.error("Chain failed", code=e.error_code)
            print(f"Fix: {e.how_to_fix}")
    """

    error_code: str = "HR-ERR-000"
    why_it_happened: str = "An unexpected error occurred"
    how_to_fix: List[str] = ["Check the error message for details"]

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        why_it_happened: Optional[str] = None,
        how_to_fix: Optional[List[str]] = None,
    ) -> None:
        super().__init__(sanitize_message(message))

        if error_code is not None:
            self.error_code = error_code
        if why_it_happened is not None:
            self.why_it_happened = why_it_happened
        if how_to_fix is not None:
            self.how_to_fix = how_to_fix

    @property
    def user_message(self) -> str:
        """Get the user-friendly error message."""
        return str(self)


class ValidationError(HybridRAGError):
    """Raised when a request or configuration value is invalid."""

    error_code = "HR-VAL-001"
    why_it_happened = "The request did not pass input validation"
    how_to_fix = ["Provide a non-empty question", "Check request field types"]


class ChunkingError(HybridRAGError):
    """Raised when a document cannot be segmented."""

    error_code = "HR-CHK-001"
    why_it_happened = "The document could not be parsed into chunks"
    how_to_fix = ["Check that the document is UTF-8 text or markdown"]


class VectorStoreError(HybridRAGError):
    """Base exception for embedding and vector database failures."""

    error_code = "HR-VEC-000"
    why_it_happened = "The vector store or embedding provider failed"
    how_to_fix = [
        "Check connectivity to the vector database",
        "Verify the embedding model is available",
    ]


class EmbeddingError(VectorStoreError):
    """Raised when the embedding provider fails to produce vectors."""

    error_code = "HR-VEC-001"
    why_it_happened = "The embedding provider returned an error"


class CircuitOpenError(VectorStoreError):
    """
    Raised when a call is rejected because the circuit breaker is OPEN.

    Distinct from a transient failure: no provider call was attempted.
    ``retry_after_seconds`` tells operators when a probe will be allowed.
    """

    error_code = "HR-VEC-002"
    why_it_happened = (
        "Too many consecutive provider failures; calls are being rejected "
        "until the cooldown elapses"
    )
    how_to_fix = [
        "Wait for the cooldown to elapse",
        "Fix the provider outage, then reset the circuit breaker",
    ]

    def __init__(self, message: str, retry_after_seconds: float = 0.0) -> None:
        super().__init__(message)
        self.retry_after_seconds = max(0.0, retry_after_seconds)


class IndexNotReadyError(HybridRAGError):
    """Raised when no retrieval path is available for a query."""

    error_code = "HR-IDX-001"
    why_it_happened = "The lexical index is unbuilt and semantic search is unavailable"
    how_to_fix = ["Ingest documents", "Check the vector store health"]


class SearchError(HybridRAGError):
    """Raised when hybrid search cannot produce results."""

    error_code = "HR-SRC-001"
    why_it_happened = "All search methods failed"


class SynthesisError(HybridRAGError):
    """Raised when a response cannot be synthesized."""

    error_code = "HR-SYN-001"
    why_it_happened = "The answer could not be generated from retrieved context"


class CacheError(HybridRAGError):
    """Raised on query cache failures."""

    error_code = "HR-CAC-001"
    why_it_happened = "The query cache could not be read or written"


class StreamingError(HybridRAGError):
    """Raised when an event stream fails mid-flight."""

    error_code = "HR-STR-001"
    why_it_happened = "The response stream was interrupted"
