"""
Tests for the OpenAI and Claude clients.

The SDK clients are replaced with mocks through the lazy ``client``
property cache, so no network call or SDK import happens.

Organization
------------
- TestComposeUserMessage: Context/question layout
- TestOpenAIClient: Request shape, usage, retries, streaming
- TestClaudeClient: Request shape, usage, retries, streaming
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch

import pytest

from hybridrag.llm.base import (
    ConfigurationError,
    GenerationConfig,
    GenerationResult,
    LLMError,
    RateLimitError,
    compose_user_message,
)
from hybridrag.llm.claude import ClaudeClient
from hybridrag.llm.openai import OpenAIClient


# ============================================================================
# Test Helpers
# ============================================================================


def _openai_response(content, prompt_tokens=10, completion_tokens=5):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def _claude_response(text, input_tokens=12, output_tokens=4):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


@pytest.fixture
def no_sleep():
    with patch("hybridrag.core.retry.time.sleep") as sleep:
        yield sleep


@pytest.fixture
def openai_client() -> OpenAIClient:
    client = OpenAIClient(api_key="sk-test")
    client._client_cached = Mock()
    return client


@pytest.fixture
def claude_client() -> ClaudeClient:
    client = ClaudeClient(api_key="key")
    client._client_cached = MagicMock()
    return client


# ============================================================================
# Test Classes
# ============================================================================


class TestComposeUserMessage:
    def test_context_first(self):
        assert compose_user_message("Q?", "[1] doc") == "[1] doc\n\nQ?"

    def test_no_context(self):
        assert compose_user_message("Q?") == "Q?"

    def test_generation_result(self):
        result = GenerationResult(text="hi", finish_reason="length")

        assert str(result) == "hi"
        assert result.was_truncated


class TestOpenAIClient:
    """Tests for OpenAIClient."""

    def test_generate(self, openai_client):
        sdk = openai_client.client
        sdk.chat.completions.create.return_value = _openai_response("  Kerala [1]. ")

        text = openai_client.generate_with_context(
            "system", "Q?", context="[1] doc", config=GenerationConfig(stop_sequences=["END"])
        )

        assert text == "Kerala [1]."
        params = sdk.chat.completions.create.call_args.kwargs
        assert params["messages"] == [
            {"role": "system", "content": "system"},
            {"role": "user", "content": "[1] doc\n\nQ?"},
        ]
        assert params["stop"] == ["END"]
        assert params["temperature"] == 0.05

    def test_usage_accumulates(self, openai_client):
        openai_client.client.chat.completions.create.return_value = _openai_response("a")

        openai_client.generate("one")
        openai_client.generate("two")

        assert openai_client.get_usage() == {
            "prompt_tokens": 20,
            "completion_tokens": 10,
            "total_tokens": 30,
        }
        openai_client.reset_usage()
        assert openai_client.get_usage()["total_tokens"] == 0

    def test_transient_error_retried(self, openai_client, no_sleep):
        openai_client.client.chat.completions.create.side_effect = [
            ConnectionError("connection reset"),
            _openai_response("ok"),
        ]

        assert openai_client.generate("Q?") == "ok"
        assert no_sleep.call_count == 1

    def test_rate_limit_after_retries(self, openai_client, no_sleep):
        openai_client.client.chat.completions.create.side_effect = Exception("Error 429: rate limit")

        with pytest.raises(RateLimitError):
            openai_client.generate("Q?")
        assert openai_client.client.chat.completions.create.call_count == 3

    def test_empty_response_is_error(self, openai_client, no_sleep):
        openai_client.client.chat.completions.create.return_value = _openai_response("")

        with pytest.raises(LLMError, match="OpenAI generation failed"):
            openai_client.generate("Q?")

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        client = OpenAIClient()

        assert not client.is_available()
        with pytest.raises(ConfigurationError):
            client.generate("Q?")

    def test_stream(self, openai_client):
        def _delta(content):
            return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])

        openai_client.client.chat.completions.create.return_value = iter(
            [_delta("Ker"), _delta(None), _delta("ala")]
        )

        pieces = list(openai_client.stream_generate_with_context("system", "Q?"))

        assert pieces == ["Ker", "ala"]
        assert openai_client.client.chat.completions.create.call_args.kwargs["stream"] is True

    def test_stream_failure_wrapped(self, openai_client):
        openai_client.client.chat.completions.create.side_effect = RuntimeError("boom")

        with pytest.raises(LLMError, match="streaming failed"):
            list(openai_client.stream_generate_with_context("system", "Q?"))


class TestClaudeClient:
    """Tests for ClaudeClient."""

    def test_generate(self, claude_client):
        sdk = claude_client.client
        sdk.messages.create.return_value = _claude_response("Kerala [1].")

        text = claude_client.generate_with_context("system", "Q?", context="[1] doc")

        assert text == "Kerala [1]."
        params = sdk.messages.create.call_args.kwargs
        assert params["system"] == "system"
        assert params["messages"] == [{"role": "user", "content": "[1] doc\n\nQ?"}]
        assert "stop_sequences" not in params
        assert claude_client.get_usage()["prompt_tokens"] == 12

    def test_non_text_blocks_ignored(self, claude_client):
        claude_client.client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(type="tool_use"), SimpleNamespace(type="text", text="answer")],
            usage=None,
        )

        assert claude_client.generate("Q?") == "answer"

    def test_overloaded_is_rate_limit(self, claude_client, no_sleep):
        claude_client.client.messages.create.side_effect = Exception("overloaded_error")

        with pytest.raises(RateLimitError):
            claude_client.generate("Q?")
        assert no_sleep.call_count == 2

    def test_stream(self, claude_client):
        stream = claude_client.client.messages.stream.return_value.__enter__.return_value
        stream.text_stream = ["ബജറ്റ് ", "", "₹30 ലക്ഷം"]

        pieces = list(claude_client.stream_generate_with_context("system", "Q?"))

        assert pieces == ["ബജറ്റ് ", "₹30 ലക്ഷം"]

    def test_stream_rate_limit(self, claude_client):
        claude_client.client.messages.stream.side_effect = Exception("rate_limit_error")

        with pytest.raises(RateLimitError):
            list(claude_client.stream_generate_with_context("system", "Q?"))

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with pytest.raises(ConfigurationError):
            ClaudeClient().generate("Q?")
