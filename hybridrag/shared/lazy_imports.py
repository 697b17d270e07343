"""
Lazy loading for heavy dependencies.

Embedding models, vector database clients and LLM SDKs are expensive to
import and initialize. Components expose them through ``@lazy_property``
so construction stays cheap and nothing loads until first use:

    class SentenceTransformerEmbedder:
        @lazy_property
        def model(self) -> Any:
            from sentence_transformers import SentenceTransformer
            return SentenceTransformer(self.model_name)
"""

from functools import wraps
from typing import Any, Callable, cast


def lazy_property(import_func: Callable[..., Any]) -> Any:
    """Decorator for lazy-loaded properties.

    Caches the result of ``import_func`` on the instance and returns it on
    subsequent accesses.

    Examples:
        >>> class MyService:
        ...     @lazy_property
        ...     def client(self):
        ...         return object()
        ...
        >>> service = MyService()
        >>> assert service.client is service.client
    """
    attr_name = f"_{import_func.__name__}_cached"

    @wraps(import_func)
    def wrapper(self: Any) -> Any:
        if not hasattr(self, attr_name):
            setattr(self, attr_name, import_func(self))
        return getattr(self, attr_name)

    return cast(Any, property(wrapper))
