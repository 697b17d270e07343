"""
Language model client interface.

The response synthesizer is the only consumer. It needs two things from a
provider: a complete answer for a system prompt plus retrieved context, and
the same answer as an incremental stream for the SSE route.

    ┌──────────────────────┐
    │ ResponseSynthesizer  │
    └──────────┬───────────┘
               │ generate_with_context / stream_generate_with_context
    ┌──────────┴───────────┐
    │      LLMClient       │
    └──────────┬───────────┘
         ┌─────┴──────┐
         ↓            ↓
    ┌─────────┐  ┌─────────┐
    │ OpenAI  │  │ Claude  │
    └─────────┘  └─────────┘

Exception Hierarchy
-------------------
    LLMError (base)
    ├── RateLimitError      # Provider throttled the request
    └── ConfigurationError  # Missing API key or SDK

Provider calls are wrapped with ``@llm_retry`` from ``hybridrag.core.retry``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional


class LLMError(Exception):
    """Base exception for LLM errors."""


class RateLimitError(LLMError):
    """Raised when the provider rate limit is exceeded."""

    def __init__(self, message: str, retry_after_seconds: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class ConfigurationError(LLMError):
    """Raised when a provider is not configured (API key, SDK)."""


@dataclass
class GenerationConfig:
    """
    Generation settings.

    Attributes:
        max_tokens: Maximum tokens to generate
        temperature: Kept very low; answers must stay close to the context
        timeout: Request timeout in seconds
        stop_sequences: Strings that stop generation
    """

    max_tokens: int = 600
    temperature: float = 0.05
    top_p: float = 1.0
    timeout: float = 12.0
    stop_sequences: Optional[List[str]] = None


@dataclass
class GenerationResult:
    """Generated text plus provider metadata."""

    text: str
    finish_reason: Optional[str] = None
    model: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.text

    @property
    def was_truncated(self) -> bool:
        return self.finish_reason in ("length", "max_tokens")


def compose_user_message(user_prompt: str, context: Optional[str] = None) -> str:
    """Context first, question last."""
    if not context:
        return user_prompt
    return f"{context}\n\n{user_prompt}"


class LLMClient(ABC):
    """Abstract base class for LLM providers."""

    def _get_usage(self) -> Dict[str, int]:
        if not hasattr(self, "_usage"):
            self._usage = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
        return self._usage

    def _record_usage(self, prompt_tokens: int = 0, completion_tokens: int = 0) -> None:
        usage = self._get_usage()
        usage["prompt_tokens"] += prompt_tokens
        usage["completion_tokens"] += completion_tokens
        usage["total_tokens"] += prompt_tokens + completion_tokens

    def get_usage(self) -> Dict[str, int]:
        """Cumulative token usage for this client."""
        return dict(self._get_usage())

    def reset_usage(self) -> None:
        for key in self._get_usage():
            self._usage[key] = 0

    @abstractmethod
    def generate_with_context(
        self,
        system_prompt: str,
        user_prompt: str,
        context: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
        **kwargs: Any,
    ) -> str:
        """
        Generate an answer.

        Args:
            system_prompt: System instructions
            user_prompt: User question
            context: Retrieved documents block
            config: Generation settings

        Returns:
            Generated text

        Raises:
            LLMError: Provider failure
            ConfigurationError: Provider not configured
        """

    def generate(self, prompt: str, config: Optional[GenerationConfig] = None, **kwargs: Any) -> str:
        return self.generate_with_context(
            "You are a helpful assistant.", prompt, config=config, **kwargs
        )

    def stream_generate_with_context(
        self,
        system_prompt: str,
        user_prompt: str,
        context: Optional[str] = None,
        config: Optional[GenerationConfig] = None,
        **kwargs: Any,
    ) -> Iterator[str]:
        """
        Stream an answer as text fragments.

        The default yields the complete answer once; providers with native
        streaming override this.
        """
        yield self.generate_with_context(system_prompt, user_prompt, context, config, **kwargs)

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is configured."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier."""

    @property
    def supports_streaming(self) -> bool:
        return False
