from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Optional

from errormem.embedding.provider import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
VALID_PROVIDERS = ("auto", "openai", "ollama", "placeholder", "none")


def _ollama_settings(strict: bool) -> tuple[float, int]:
    try:
        return float(os.getenv("OLLAMA_TIMEOUT", "30")), int(os.getenv("OLLAMA_MAX_RETRIES", "2"))
    except ValueError as ve:
        if strict:
            raise RuntimeError(f"Invalid OLLAMA_TIMEOUT or OLLAMA_MAX_RETRIES value: {ve}") from ve
        logger.warning("Invalid OLLAMA_TIMEOUT or OLLAMA_MAX_RETRIES, using defaults")
        return 30.0, 2


def _build_openai(vector_size: int, embedding_model: str, strict: bool) -> Optional[EmbeddingProvider]:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        if strict:
            raise RuntimeError("EMBEDDING_PROVIDER=openai but OPENAI_API_KEY not set")
        return None
    from errormem.embedding.openai import OpenAIEmbeddingProvider

    return OpenAIEmbeddingProvider(
        api_key=api_key,
        model=embedding_model,
        dimension=vector_size,
        base_url=(os.getenv("OPENAI_BASE_URL") or "").strip() or None,
    )


def _build_ollama(vector_size: int, embedding_model: str, strict: bool) -> Optional[EmbeddingProvider]:
    base_url = os.getenv("OLLAMA_BASE_URL")
    model = os.getenv("OLLAMA_MODEL")
    if not strict and not (base_url or model):
        return None
    from errormem.embedding.ollama import DEFAULT_MODEL, OllamaEmbeddingProvider

    timeout, max_retries = _ollama_settings(strict=strict)
    return OllamaEmbeddingProvider(
        base_url=base_url or DEFAULT_OLLAMA_URL,
        model=model or DEFAULT_MODEL,
        dimension=vector_size,
        timeout=timeout,
        max_retries=max_retries,
    )


def _build_placeholder(vector_size: int, embedding_model: str, strict: bool) -> EmbeddingProvider:
    from errormem.embedding.placeholder import PlaceholderEmbeddingProvider

    return PlaceholderEmbeddingProvider(dimension=vector_size)


_BUILDERS: Dict[str, Callable[[int, str, bool], Optional[EmbeddingProvider]]] = {
    "openai": _build_openai,
    "ollama": _build_ollama,
    "placeholder": _build_placeholder,
}


def init_embedding_provider(
    *,
    state: Any,
    vector_size: int,
    embedding_model: str,
    provider_config: Optional[str] = None,
) -> None:
    """Attach an embedding provider to ``state`` unless one is already set.

    Controlled via EMBEDDING_PROVIDER (or ``provider_config``):
    - "auto" (default): OpenAI if OPENAI_API_KEY is set, then Ollama if
      OLLAMA_BASE_URL/OLLAMA_MODEL is set, then placeholder
    - "openai" / "ollama": that backend only, raising RuntimeError if it
      cannot be configured
    - "placeholder": deterministic character-based vectors
    - "none": leave the provider unset so semantic search is skipped
    """
    if state.embedding_provider is not None:
        return

    if provider_config is None:
        provider_config = os.getenv("EMBEDDING_PROVIDER", "auto")
    choice = (provider_config or "auto").strip().lower()
    if choice not in VALID_PROVIDERS:
        raise ValueError(
            f"Invalid EMBEDDING_PROVIDER={choice}. Valid options: {', '.join(VALID_PROVIDERS)}"
        )

    if choice == "none":
        logger.info("Embedding provider disabled; semantic search unavailable")
        return

    if choice != "auto":
        try:
            state.embedding_provider = _BUILDERS[choice](vector_size, embedding_model, True)
        except RuntimeError:
            raise
        except Exception as e:
            raise RuntimeError(f"Failed to initialize {choice} provider: {e}") from e
        logger.info("Embedding provider: %s", state.embedding_provider.provider_name())
        return

    for name in ("openai", "ollama"):
        try:
            provider = _BUILDERS[name](vector_size, embedding_model, False)
        except Exception as e:
            logger.warning("Failed to initialize %s provider, trying the next one: %s", name, e)
            continue
        if provider is not None:
            state.embedding_provider = provider
            logger.info("Embedding provider (auto-selected): %s", provider.provider_name())
            return

    state.embedding_provider = _build_placeholder(vector_size, embedding_model, False)
    logger.warning(
        "Using placeholder embeddings (no semantic meaning). "
        "Set OPENAI_API_KEY or OLLAMA_BASE_URL for real embeddings."
    )
