"""
Tests for error classification and user-facing messages.

Organization
------------
- TestClassifyByType: Known exception classes
- TestClassifyByMessage: Keyword rules and their order
- TestUserMessages: Localized message lookup
- TestToUserError: End-to-end conversion
"""

import pytest

from hybridrag.core.errors import (
    USER_MESSAGES,
    ErrorType,
    UserFacingError,
    classify_error,
    classify_message,
    get_user_message,
    to_user_error,
)
from hybridrag.core.exceptions import (
    CacheError,
    CircuitOpenError,
    EmbeddingError,
    ValidationError,
)
from hybridrag.llm.base import LLMError, RateLimitError


# ============================================================================
# Test Classes
# ============================================================================


class TestClassifyByType:
    """Exception classes map directly to error types."""

    @pytest.mark.parametrize(
        "error, expected",
        [
            (CircuitOpenError("open", retry_after_seconds=5), ErrorType.VECTOR_DB_ERROR),
            (EmbeddingError("bad vectors"), ErrorType.VECTOR_DB_ERROR),
            (RateLimitError("slow down"), ErrorType.RATE_LIMIT),
            (LLMError("model down"), ErrorType.LLM_ERROR),
            (ValidationError("empty"), ErrorType.VALIDATION_ERROR),
            (CacheError("full"), ErrorType.CACHE_ERROR),
            (ConnectionError("reset"), ErrorType.NETWORK_ERROR),
            (TimeoutError("slow"), ErrorType.SERVER_ERROR),
        ],
    )
    def test_known_types(self, error, expected):
        assert classify_error(error) == expected

    def test_type_wins_over_message(self):
        """A ValidationError mentioning the network is still a validation error."""
        assert classify_error(ValidationError("network field invalid")) == ErrorType.VALIDATION_ERROR


class TestClassifyByMessage:
    """Unknown exceptions are classified by message keywords."""

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("Failed to fetch", ErrorType.NETWORK_ERROR),
            ("upstream server returned 500", ErrorType.SERVER_ERROR),
            ("401 Unauthorized", ErrorType.AUTH_ERROR),
            ("Too Many Requests", ErrorType.RATE_LIMIT),
            ("stream closed", ErrorType.STREAMING_ERROR),
            ("synthesis produced nothing", ErrorType.LLM_ERROR),
            ("cache corrupted", ErrorType.CACHE_ERROR),
            ("invalid payload", ErrorType.VALIDATION_ERROR),
            ("chroma collection missing", ErrorType.VECTOR_DB_ERROR),
            ("something odd", ErrorType.GENERIC_ERROR),
            ("Invalid API key provided", ErrorType.AUTH_ERROR),
            ("403 Forbidden", ErrorType.AUTH_ERROR),
            ("api returned 502", ErrorType.SERVER_ERROR),
        ],
    )
    def test_keyword_rules(self, message, expected):
        assert classify_message(message) == expected

    def test_rules_checked_in_order(self):
        """Network keywords take precedence over later rules."""
        assert classify_message("network error while streaming") == ErrorType.NETWORK_ERROR

    def test_specific_keywords_before_generic(self):
        assert classify_message("invalid api key for embedding service") == ErrorType.AUTH_ERROR
        assert classify_message("api validation failed") == ErrorType.VALIDATION_ERROR

    def test_context_participates(self):
        """The stream context turns an unknown failure into a streaming error."""
        assert classify_error(RuntimeError("boom"), context="stream") == ErrorType.STREAMING_ERROR


class TestUserMessages:
    """Tests for localized message lookup."""

    def test_every_type_has_messages(self):
        for language in ("ml", "en"):
            assert set(USER_MESSAGES[language]) == set(ErrorType)

    def test_unknown_language_falls_back_to_malayalam(self):
        assert get_user_message(ErrorType.GENERIC_ERROR, "fr") == USER_MESSAGES["ml"][ErrorType.GENERIC_ERROR]


class TestToUserError:
    """Tests for to_user_error."""

    def test_user_message_hides_technical_detail(self):
        info = to_user_error(RuntimeError("Traceback: secret internals"), language="en")

        assert "secret" not in info.user_message
        assert "secret internals" in info.technical_message
        assert info.error_type == ErrorType.GENERIC_ERROR

    def test_api_keys_sanitized_in_technical_message(self):
        info = to_user_error(RuntimeError("auth failed for sk-abcdefghijklmnopqrstuvwxyz"))

        assert "abcdefghijklmnopqrstuvwxyz" not in info.technical_message

    def test_retry_after_carried(self):
        info = to_user_error(CircuitOpenError("open", retry_after_seconds=12.34), language="en")

        assert info.retry_after_seconds == pytest.approx(12.34)
        assert info.to_dict() == {
            "errorType": "VECTOR_DB_ERROR",
            "message": USER_MESSAGES["en"][ErrorType.VECTOR_DB_ERROR],
            "retryAfterSeconds": 12.3,
        }

    def test_to_dict_omits_missing_retry(self):
        info = UserFacingError(ErrorType.LLM_ERROR, "msg", "detail")

        assert "retryAfterSeconds" not in info.to_dict()
