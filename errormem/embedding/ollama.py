"""Embeddings from a local Ollama server."""

import logging
from typing import Any, Dict, List, Optional

import requests

from errormem.embedding.provider import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "nomic-embed-text"


def _vector_from(body: Dict[str, Any]) -> List[float]:
    if "embedding" in body:
        return body["embedding"]
    items = body.get("data") or []
    if items and isinstance(items[0], dict) and "embedding" in items[0]:
        return items[0]["embedding"]
    raise ValueError(f"Ollama response has no embedding: {sorted(body)}")


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Posts to ``/api/embeddings`` with a bounded number of retries.

    The model must already be pulled on the server.
    """

    def __init__(
        self,
        base_url: str,
        model: str = DEFAULT_MODEL,
        dimension: int = 768,
        timeout: float = 30.0,
        max_retries: int = 2,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._dimension = dimension
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = requests.Session()
        logger.info("Ollama embeddings ready (model=%s, dimensions=%d, url=%s)", model, dimension, self.base_url)

    def _post(self, text: str) -> List[float]:
        endpoint = f"{self.base_url}/api/embeddings"
        failure: Optional[Exception] = None
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                response = self.session.post(
                    endpoint, json={"model": self.model, "prompt": text}, timeout=self.timeout
                )
                response.raise_for_status()
                return _vector_from(response.json())
            except (requests.RequestException, ValueError) as exc:
                failure = exc
                logger.debug("Ollama attempt %d/%d failed: %s", attempt, attempts, exc)
        raise RuntimeError(f"Ollama embedding request failed: {failure}") from failure

    def generate_embedding(self, text: str) -> List[float]:
        return self._checked(self._post(text))

    def generate_embeddings_batch(self, texts: List[str]) -> List[List[float]]:
        # The endpoint takes one prompt per call.
        return [self._checked(self._post(text), index=i) for i, text in enumerate(texts)]

    def dimension(self) -> int:
        return self._dimension

    def provider_name(self) -> str:
        return f"ollama:{self.model}"
