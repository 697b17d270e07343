"""
LLM provider factory.

Builds the synthesis client from configuration. Provider ``none`` disables
the model entirely; the synthesizer then answers extractively.
"""

from typing import Callable, Dict, Optional

from hybridrag.core.config import Config
from hybridrag.core.logging import get_logger
from hybridrag.llm.base import GenerationConfig, LLMClient

logger = get_logger(__name__)


def get_generation_config(config: Config, provider: Optional[str] = None) -> GenerationConfig:
    """Generation settings for the configured provider."""
    provider = provider or config.llm.default_provider
    provider_config = getattr(config.llm, provider, None)
    temperature = provider_config.temperature if provider_config else 0.05
    return GenerationConfig(max_tokens=config.llm.max_tokens, temperature=temperature)


def _create_openai_client(config: Config) -> LLMClient:
    from hybridrag.llm.openai import OpenAIClient

    return OpenAIClient(
        api_key=config.llm.openai.api_key or None,
        model=config.llm.openai.model,
        default_config=get_generation_config(config, "openai"),
    )


def _create_claude_client(config: Config) -> LLMClient:
    from hybridrag.llm.claude import ClaudeClient

    return ClaudeClient(
        api_key=config.llm.claude.api_key or None,
        model=config.llm.claude.model,
        default_config=get_generation_config(config, "claude"),
    )


_PROVIDERS: Dict[str, Callable[[Config], LLMClient]] = {
    "openai": _create_openai_client,
    "claude": _create_claude_client,
}


def get_llm_client(config: Config, provider: Optional[str] = None) -> Optional[LLMClient]:
    """
    Get the LLM client for a provider.

    Args:
        config: HybridRAG configuration
        provider: Override for config.llm.default_provider

    Returns:
        Configured client, or None for provider "none"

    Raises:
        ValueError: If provider is unknown
    """
    provider = provider or config.llm.default_provider
    if provider == "none":
        return None
    factory = _PROVIDERS.get(provider)
    if factory is None:
        raise ValueError(f"Unknown LLM provider: {provider}")

    client = factory(config)
    if not client.is_available():
        logger.warning("LLM provider not configured, answers will be extractive", provider=provider)
    return client
