"""
Error taxonomy and user-facing messages.

Every failure that reaches a user is classified into an ErrorType and
rendered as a short, localized, non-technical message. The technical
detail is logged, never returned.

    try:
        service.call_chain(question)
    except Exception as e:
        info = to_user_error(e, context="chat")
        return {"error": info.user_message, "errorType": info.error_type.value}
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

import pydantic

from hybridrag.core.exceptions import (
    CacheError,
    CircuitOpenError,
    StreamingError,
    SynthesisError,
    ValidationError,
    VectorStoreError,
    sanitize_message,
)
from hybridrag.core.logging import StructuredLogger, get_logger

logger = get_logger(__name__)


class ErrorType(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    STREAMING_ERROR = "STREAMING_ERROR"
    LLM_ERROR = "LLM_ERROR"
    CACHE_ERROR = "CACHE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    VECTOR_DB_ERROR = "VECTOR_DB_ERROR"
    GENERIC_ERROR = "GENERIC_ERROR"


USER_MESSAGES: Dict[str, Dict[ErrorType, str]] = {
    "ml": {
        ErrorType.NETWORK_ERROR: "ഇന്റർനെറ്റ് കണക്ഷൻ പ്രശ്നമുണ്ട്. ദയവായി നെറ്റ്‌വർക്ക് പരിശോധിച്ച് വീണ്ടും ശ്രമിക്കുക.",
        ErrorType.SERVER_ERROR: "സെർവറിൽ ഒരു പ്രശ്നമുണ്ട്. കുറച്ച് നിമിഷങ്ങൾ കഴിഞ്ഞ് വീണ്ടും ശ്രമിക്കുക.",
        ErrorType.AUTH_ERROR: "ലോഗിൻ പ്രശ്നമുണ്ട്. ദയവായി വീണ്ടും ലോഗിൻ ചെയ്യുക.",
        ErrorType.RATE_LIMIT: "വളരെയധികം അഭ്യർത്ഥനകൾ അയച്ചിരിക്കുന്നു. കുറച്ച് നിമിഷങ്ങൾ കാത്തിരുന്ന് വീണ്ടും ശ്രമിക്കുക.",
        ErrorType.STREAMING_ERROR: "സന്ദേശം സ്വീകരിക്കുന്നതിൽ പ്രശ്നമുണ്ട്. ദയവായി വീണ്ടും ശ്രമിക്കുക.",
        ErrorType.LLM_ERROR: "ഉത്തരം തയ്യാറാക്കുന്നതിൽ കാലതാമസമുണ്ട്. ദയവായി വീണ്ടും ശ്രമിക്കുക.",
        ErrorType.CACHE_ERROR: "സിസ്റ്റം മെമ്മറി പ്രശ്നമുണ്ട്. പേജ് റിഫ്രെഷ് ചെയ്ത് വീണ്ടും ശ്രമിക്കുക.",
        ErrorType.VALIDATION_ERROR: "അഭ്യർത്ഥനയിൽ പ്രശ്നമുണ്ട്. ദയവായി ചോദ്യം വീണ്ടും ടൈപ്പ് ചെയ്യുക.",
        ErrorType.VECTOR_DB_ERROR: "വിവരങ്ങൾ തിരയുന്നതിൽ പ്രശ്നമുണ്ട്. ദയവായി വീണ്ടും ശ്രമിക്കുക.",
        ErrorType.GENERIC_ERROR: "ക്ഷമിക്കണം, ഒരു പ്രശ്നമുണ്ടായി. ദയവായി വീണ്ടും ശ്രമിക്കുക.",
    },
    "en": {
        ErrorType.NETWORK_ERROR: "There is a network connection problem. Please check your connection and try again.",
        ErrorType.SERVER_ERROR: "The server ran into a problem. Please try again in a few moments.",
        ErrorType.AUTH_ERROR: "There is a sign-in problem. Please sign in again.",
        ErrorType.RATE_LIMIT: "Too many requests were sent. Please wait a moment and try again.",
        ErrorType.STREAMING_ERROR: "There was a problem receiving the message. Please try again.",
        ErrorType.LLM_ERROR: "Preparing the answer is taking longer than expected. Please try again.",
        ErrorType.CACHE_ERROR: "The system hit a memory problem. Refresh and try again.",
        ErrorType.VALIDATION_ERROR: "There is a problem with the request. Please type the question again.",
        ErrorType.VECTOR_DB_ERROR: "There was a problem searching the documents. Please try again.",
        ErrorType.GENERIC_ERROR: "Sorry, something went wrong. Please try again.",
    },
}

DEFAULT_LANGUAGE = "ml"

# Checked in order; the first matching rule wins, so specific rules come first
_KEYWORD_RULES: Tuple[Tuple[ErrorType, Tuple[str, ...]], ...] = (
    (ErrorType.RATE_LIMIT, ("rate limit", "too many requests", "429")),
    (ErrorType.AUTH_ERROR, ("api key", "auth", "unauthorized", "forbidden", "401", "403")),
    (ErrorType.NETWORK_ERROR, ("network", "fetch", "connection")),
    (ErrorType.VECTOR_DB_ERROR, ("pinecone", "chroma", "vector", "embedding")),
    (ErrorType.STREAMING_ERROR, ("stream",)),
    (ErrorType.LLM_ERROR, ("llm", "synthesis")),
    (ErrorType.CACHE_ERROR, ("cache", "memory")),
    (ErrorType.VALIDATION_ERROR, ("validation", "invalid", "400")),
    (ErrorType.SERVER_ERROR, ("api", "server", "500", "timeout")),
)


@dataclass(frozen=True)
class UserFacingError:
    """Classified error: the user message is safe to display."""

    error_type: ErrorType
    user_message: str
    technical_message: str
    retry_after_seconds: Optional[float] = None

    def to_dict(self) -> dict:
        payload = {
            "errorType": self.error_type.value,
            "message": self.user_message,
        }
        if self.retry_after_seconds is not None:
            payload["retryAfterSeconds"] = round(self.retry_after_seconds, 1)
        return payload


def _classify_by_type(error: BaseException) -> Optional[ErrorType]:
    # Imported here to keep core free of the llm package at import time
    from hybridrag.llm.base import LLMError, RateLimitError

    type_map: Tuple[Tuple[Tuple[type, ...], ErrorType], ...] = (
        ((CircuitOpenError, VectorStoreError), ErrorType.VECTOR_DB_ERROR),
        ((RateLimitError,), ErrorType.RATE_LIMIT),
        ((LLMError, SynthesisError), ErrorType.LLM_ERROR),
        ((ValidationError, pydantic.ValidationError), ErrorType.VALIDATION_ERROR),
        ((CacheError, MemoryError), ErrorType.CACHE_ERROR),
        ((StreamingError,), ErrorType.STREAMING_ERROR),
        ((ConnectionError,), ErrorType.NETWORK_ERROR),
        ((TimeoutError,), ErrorType.SERVER_ERROR),
    )
    for types, error_type in type_map:
        if isinstance(error, types):
            return error_type
    return None


def classify_error(error: BaseException, context: str = "") -> ErrorType:
    """Map an exception to the error taxonomy.

    Known exception classes are mapped first; otherwise the lowercased
    message (plus optional context) is matched against keyword rules.
    """
    by_type = _classify_by_type(error)
    if by_type is not None:
        return by_type
    return classify_message(f"{error} {context}")


def classify_message(message: str) -> ErrorType:
    """Classify a raw error message by keyword."""
    text = message.lower()
    for error_type, keywords in _KEYWORD_RULES:
        if any(keyword in text for keyword in keywords):
            return error_type
    return ErrorType.GENERIC_ERROR


def get_user_message(error_type: ErrorType, language: str = DEFAULT_LANGUAGE) -> str:
    messages = USER_MESSAGES.get(language, USER_MESSAGES[DEFAULT_LANGUAGE])
    return messages[error_type]


def to_user_error(
    error: BaseException,
    context: str = "",
    language: str = DEFAULT_LANGUAGE,
    log: Optional[StructuredLogger] = None,
) -> UserFacingError:
    """Classify an error, log its technical detail, and build the user view."""
    error_type = classify_error(error, context)
    technical = sanitize_message(f"{type(error).__name__}: {error}")
    (log or logger).error(
        "Request failed",
        context=context or "unknown",
        error_type=error_type.value,
        detail=technical,
    )
    retry_after = getattr(error, "retry_after_seconds", None)
    return UserFacingError(
        error_type=error_type,
        user_message=get_user_message(error_type, language),
        technical_message=technical,
        retry_after_seconds=retry_after,
    )
