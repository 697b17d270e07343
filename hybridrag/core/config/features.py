"""
Feature configuration.

Query cache, conversation memory, synthesis/validation and API server
settings.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass
class CacheConfig:
    """Query cache configuration."""

    enabled: bool = True
    max_size: int = 200
    ttl_seconds: float = 600.0
    min_quality: float = 0.3  # Results scoring below this are not cached


@dataclass
class MemoryConfig:
    """Conversation memory configuration."""

    max_turns: int = 20
    entity_decay: float = 0.8  # Weight multiplier per turn of age
    interest_decay: float = 0.9
    max_sessions: int = 1000


@dataclass
class SynthesisConfig:
    """Response synthesis and validation settings."""

    max_sources: int = 6
    max_context_chars: int = 12000
    min_response_chars: int = 20
    language: str = "ml"  # Language of user-facing fallback and error messages
    quality_history_size: int = 50


@dataclass
class APIConfig:
    """API server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
