"""Embeddings from the OpenAI API or any OpenAI-compatible endpoint."""

import logging
from typing import List, Optional

from openai import OpenAI

from errormem.embedding.provider import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "text-embedding-3-small"


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Calls ``embeddings.create`` with an explicit ``dimensions`` request.

    Retries and timeouts are delegated to the SDK client.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        dimension: int = 1536,
        timeout: float = 30.0,
        max_retries: int = 2,
        base_url: Optional[str] = None,
    ):
        options = {"api_key": api_key, "timeout": timeout, "max_retries": max_retries}
        if base_url:
            options["base_url"] = base_url
        self.client = OpenAI(**options)
        self.model = model
        self._dimension = dimension
        logger.info(
            "OpenAI embeddings ready (model=%s, dimensions=%d, endpoint=%s)",
            model,
            dimension,
            base_url or "default",
        )

    def _create(self, payload):
        return self.client.embeddings.create(
            input=payload, model=self.model, dimensions=self._dimension
        )

    def generate_embedding(self, text: str) -> List[float]:
        response = self._create(text)
        return self._checked(response.data[0].embedding)

    def generate_embeddings_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        response = self._create(texts)
        vectors = [self._checked(item.embedding, index=i) for i, item in enumerate(response.data)]
        logger.debug("Embedded %d error messages via OpenAI", len(vectors))
        return vectors

    def dimension(self) -> int:
        return self._dimension

    def provider_name(self) -> str:
        return f"openai:{self.model}"
