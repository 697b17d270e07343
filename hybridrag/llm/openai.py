"""
OpenAI chat completions provider.

Requires OPENAI_API_KEY (or an explicit key) and the ``openai`` SDK.
"""

import os
from typing import Any, Dict, Iterator, List, Optional

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


def _is_rate_limited(error: BaseException) -> bool:
    message = str(error).lower()
    return any(term in message for term in ("rate limit", "429", "quota"))


class OpenAIClient(LLMClient):
    """OpenAI API client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        default_config: Optional[GenerationConfig] = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        self._model_name = model
        self.default_config = default_config or GenerationConfig()

    @lazy_property
    def client(self) -> Any:
        """Lazy-load the OpenAI client."""
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY not set")
        from openai import OpenAI

        return OpenAI(api_key=self.api_key, timeout=self.default_config.timeout)

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def supports_streaming(self) -> bool:
        return True

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _request(
        self, system_prompt: str, user_message: str, config: GenerationConfig
    ) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ]
        params: Dict[str, Any] = {
            "model": self._model_name,
            "messages": messages,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "top_p": config.top_p,
        }
        if config.stop_sequences:
            params["stop"] = config.stop_sequences
        return params

    @llm_retry
    def _complete(self, client: Any, params: Dict[str, Any]) -> str:
        response = client.chat.completions.create(**params)
        if not response.choices or not response.choices[0].message.content:
            raise LLMError("Empty response from OpenAI")
        if response.usage:
            self._record_usage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
            )
        return response.choices[0].message.content.strip()

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
                raise RateLimitError(f"OpenAI rate limit: {e.last_exception}") from e
            raise LLMError(f"OpenAI generation failed: {e.last_exception}") from e

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
            stream = self.client.chat.completions.create(stream=True, **params)
            for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except (ConfigurationError, LLMError):
            raise
        except Exception as e:
            if _is_rate_limited(e):
                raise RateLimitError(f"OpenAI rate limit: {e}") from e
            raise LLMError(f"OpenAI streaming failed: {e}") from e
