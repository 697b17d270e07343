"""
Embedding providers.

    EmbeddingProvider (abstract)
    ├── SentenceTransformerEmbedder   local model, lazy-loaded
    └── OpenAIEmbedder                text-embedding-3 API

Providers return plain ``List[List[float]]`` so backends stay agnostic of
numpy or SDK types.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from hybridrag.core.config import EmbeddingConfig
from hybridrag.core.exceptions import EmbeddingError
from hybridrag.core.logging import get_logger
from hybridrag.shared.lazy_imports import lazy_property

logger = get_logger(__name__)


class EmbeddingProvider(ABC):
    """Turns texts into dense vectors."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...

    @abstractmethod
    def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        ...

    def embed_query(self, text: str) -> List[float]:
        return self.embed_documents([text])[0]


class SentenceTransformerEmbedder(EmbeddingProvider):
    """sentence-transformers model, loaded on first use."""

    def __init__(self, model_name: str, device: str = "cpu") -> None:
        self._model_name = model_name
        self.device = device

    @property
    def model_name(self) -> str:
        return self._model_name

    @lazy_property
    def model(self) -> Any:
        from sentence_transformers import SentenceTransformer

        logger.info("Loading embedding model", model=self._model_name)
        return SentenceTransformer(self._model_name, device=self.device)

    def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        embeddings = self.model.encode(
            list(texts), convert_to_numpy=True, normalize_embeddings=True
        )
        return embeddings.tolist()


class OpenAIEmbedder(EmbeddingProvider):
    """OpenAI embeddings endpoint."""

    def __init__(self, model_name: str = "text-embedding-3-large", api_key: str = "") -> None:
        self._model_name = model_name
        self.api_key = api_key

    @property
    def model_name(self) -> str:
        return self._model_name

    @lazy_property
    def client(self) -> Any:
        if not self.api_key:
            raise EmbeddingError(
                "OpenAI API key not configured",
                how_to_fix=["Set OPENAI_API_KEY"],
            )
        from openai import OpenAI

        return OpenAI(api_key=self.api_key)

    def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        response = self.client.embeddings.create(model=self._model_name, input=list(texts))
        return [item.embedding for item in response.data]


def create_embedder(config: Optional[EmbeddingConfig] = None) -> EmbeddingProvider:
    """Build the configured embedding provider."""
    config = config or EmbeddingConfig()
    if config.provider == "openai":
        return OpenAIEmbedder(config.model, config.api_key)
    return SentenceTransformerEmbedder(config.model, config.device)
