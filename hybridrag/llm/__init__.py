"""
LLM provider integrations used for answer synthesis.

    from hybridrag.llm import get_llm_client
    client = get_llm_client(config)   # None when llm.default_provider is "none"
"""

from hybridrag.llm.base import (
    ConfigurationError,
    GenerationConfig,
    GenerationResult,
    LLMClient,
    LLMError,
    RateLimitError,
)
from hybridrag.llm.factory import get_generation_config, get_llm_client

__all__ = [
    "ConfigurationError",
    "GenerationConfig",
    "GenerationResult",
    "LLMClient",
    "LLMError",
    "RateLimitError",
    "get_generation_config",
    "get_llm_client",
]
