"""Deterministic character-based embeddings for tests and offline use."""

import math
from typing import List

from errormem.embedding.provider import EmbeddingProvider


class PlaceholderEmbeddingProvider(EmbeddingProvider):
    """Builds unit vectors from the character codes of the lowercased text.

    Identical messages always map to identical vectors, and messages sharing
    most characters land close together, which is enough to exercise the
    semantic search path without a model. There is no real semantic meaning.
    """

    def __init__(self, dimension: int = 128, model: str = "placeholder-v1"):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self._dimension = dimension
        self.model = model

    def generate_embedding(self, text: str) -> List[float]:
        lowered = (text or "").lower()
        if not lowered:
            return [0.0] * self._dimension

        values = []
        for i in range(self._dimension):
            code = ord(lowered[i % len(lowered)])
            values.append(math.sin(code * (i + 1)) * math.cos(i * 0.1))

        magnitude = math.sqrt(sum(v * v for v in values))
        if magnitude == 0:
            return values
        return [v / magnitude for v in values]

    def generate_embeddings_batch(self, texts: List[str]) -> List[List[float]]:
        return [self.generate_embedding(text) for text in texts]

    def dimension(self) -> int:
        return self._dimension

    def provider_name(self) -> str:
        return self.model
