"""
LLM configuration.

Per-provider settings for the synthesis model (OpenAI, Claude).
Synthesis runs at a low temperature for factual answers.
"""

from dataclasses import dataclass, field


@dataclass
class LLMProviderConfig:
    """Individual LLM provider configuration."""

    model: str = ""
    api_key: str = ""
    url: str = ""
    temperature: float = 0.05


@dataclass
class LLMConfig:
    """LLM providers configuration."""

    default_provider: str = "openai"  # openai, claude, none
    max_tokens: int = 600
    openai: LLMProviderConfig = field(
        default_factory=lambda: LLMProviderConfig(model="gpt-4o-mini")
    )
    claude: LLMProviderConfig = field(
        default_factory=lambda: LLMProviderConfig(model="claude-3-haiku-20240307")
    )
