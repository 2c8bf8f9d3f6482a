"""Embedding providers for semantic error search.

- OpenAI (API-based, requires key)
- Ollama (local HTTP server)
- Placeholder (deterministic character-based fallback)
"""

from .ollama import OllamaEmbeddingProvider
from .openai import OpenAIEmbeddingProvider
from .placeholder import PlaceholderEmbeddingProvider
from .provider import EmbeddingProvider
from .provider_init import init_embedding_provider

__all__ = [
    "EmbeddingProvider",
    "OllamaEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "PlaceholderEmbeddingProvider",
    "init_embedding_provider",
]
