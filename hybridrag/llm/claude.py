"""
Anthropic Claude provider.

Requires ANTHROPIC_API_KEY (or an explicit key) and the ``anthropic`` SDK.
"""

import os
from typing import Any, Iterator, Optional

from hybridrag.core.logging import get_logger
from hybridrag.core.retry import RetryError, llm_retry
from hybridrag.llm.base import (
    ConfigurationError,
    GenerationConfig,
    LLMClient,
    LLMError,
    RateLimitError,
    compose_user_message,
)
from hybridrag.shared.lazy_imports import lazy_property

logger = get_logger(__name__)

RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "429", "overloaded")


def _is_rate_limited(error: BaseException) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


class ClaudeClient(LLMClient):
    """Anthropic Messages API client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-3-haiku-20240307",
        default_config: Optional[GenerationConfig] = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        self._model_name = model
        self.default_config = default_config or GenerationConfig()

    @lazy_property
    def client(self) -> Any:
        """Lazy-load the Anthropic client."""
        if not self.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY not set")
        from anthropic import Anthropic

        return Anthropic(api_key=self.api_key, timeout=self.default_config.timeout)

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def supports_streaming(self) -> bool:
        return True

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _request(self, system_prompt: str, user_message: str, config: GenerationConfig) -> dict:
        params = {
            "model": self._model_name,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_message}],
        }
        if config.stop_sequences:
            params["stop_sequences"] = config.stop_sequences
        return params

    @llm_retry
    def _complete(self, client: Any, params: dict) -> str:
        response = client.messages.create(**params)
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        ).strip()
        if not text:
            raise LLMError("Empty response from Claude")
        usage = getattr(response, "usage", None)
        if usage is not None:
            self._record_usage(
                prompt_tokens=getattr(usage, "input_tokens", 0) or 0,
                completion_tokens=getattr(usage, "output_tokens", 0) or 0,
            )
        return text

    def generate_with_context(
        self,
        system_prompt: str,
        user_prompt: str,
        context: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
        **kwargs: Any,
    ) -> str:
        config = config or self.default_config
        params = self._request(system_prompt, compose_user_message(user_prompt, context), config)
        client = self.client
        try:
            return self._complete(client, params)
        except RetryError as e:
            if _is_rate_limited(e.last_exception):
                raise RateLimitError(f"Claude rate limit: {e.last_exception}") from e
            raise LLMError(f"Claude generation failed: {e.last_exception}") from e

    def stream_generate_with_context(
        self,
        system_prompt: str,
        user_prompt: str,
        context: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
        **kwargs: Any,
    ) -> Iterator[str]:
        config = config or self.default_config
        params = self._request(system_prompt, compose_user_message(user_prompt, context), config)
        try:
            with self.client.messages.stream(**params) as stream:
                for text in stream.text_stream:
                    if text:
                        yield text
        except (ConfigurationError, LLMError):
            raise
        except Exception as e:
            if _is_rate_limited(e):
                raise RateLimitError(f"Claude rate limit: {e}") from e
            raise LLMError(f"Claude streaming failed: {e}") from e
