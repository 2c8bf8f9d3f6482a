"""Base embedding provider interface."""

from abc import ABC, abstractmethod
from typing import List, Sequence


class EmbeddingProvider(ABC):
    """Turns error text into fixed-width vectors for semantic search.

    Every vector produced by one provider instance has ``dimension()``
    components. Stored vectors of another width are skipped at query time,
    so switching models never breaks search, it only narrows it.
    """

    @abstractmethod
    def generate_embedding(self, text: str) -> List[float]:
        """Embed a single error message.

        Raises:
            Exception: If the backend cannot produce a vector
        """

    @abstractmethod
    def generate_embeddings_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed several messages, one vector per input, in input order."""

    @abstractmethod
    def dimension(self) -> int:
        """Return the number of components in produced vectors."""

    @abstractmethod
    def provider_name(self) -> str:
        """Return the model label stored next to each embedding row.

        Returns:
            Label such as "openai:text-embedding-3-small"
        """

    def _checked(self, vector: Sequence[float], *, index: int = 0) -> List[float]:
        # A short or long vector would silently fall out of semantic search.
        if len(vector) != self.dimension():
            raise ValueError(
                f"{self.provider_name()} returned {len(vector)} components for item {index}, "
                f"expected {self.dimension()}"
            )
        return [float(v) for v in vector]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(dimension={self.dimension()}, provider={self.provider_name()})"
